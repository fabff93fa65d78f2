"""
Application context: every long-lived object, built once at process start.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from core.config import Config, get_config
from modules.engine.auto_manager import AutoManagementEngine
from modules.engine.status_file import StatusRecordFile
from modules.jobs.tracker import CycleTracker
from modules.network.observer import NetworkObserver
from modules.network.watcher import NetworkChangeWatcher
from modules.override.store import ManualOverrideStore
from modules.scheduler.scheduler import TunnelScheduler
from modules.tunnel.backends import create_backend
from modules.tunnel.controller import TunnelController


@dataclass
class AppContext:
    config_provider: Callable[[], Config]
    controller: TunnelController
    observer: NetworkObserver
    override: ManualOverrideStore
    status_file: StatusRecordFile
    engine: AutoManagementEngine
    watcher: Optional[NetworkChangeWatcher] = None
    scheduler: Optional[TunnelScheduler] = None

    @property
    def config(self) -> Config:
        return self.config_provider()


def build_context(
    config_provider: Callable[[], Config] = get_config,
    with_scheduler: bool = True,
) -> AppContext:
    """
    Wire the components together.

    Args:
        config_provider: Returns the current Config
        with_scheduler: Also create the watcher and scheduler (long-lived instance only)

    Returns:
        AppContext
    """
    config = config_provider()
    data_path = config.data_path

    controller = TunnelController(
        create_backend(config),
        command_timeout=config.command_timeout,
    )
    observer = NetworkObserver(query_timeout=config.network_query_timeout)
    override = ManualOverrideStore(data_path)
    status_file = StatusRecordFile(data_path)
    engine = AutoManagementEngine(
        controller=controller,
        observer=observer,
        override=override,
        status_file=status_file,
        config_provider=config_provider,
        tracker=CycleTracker(),
    )

    context = AppContext(
        config_provider=config_provider,
        controller=controller,
        observer=observer,
        override=override,
        status_file=status_file,
        engine=engine,
    )

    if with_scheduler:
        context.watcher = NetworkChangeWatcher(
            observer,
            on_change=lambda: engine.evaluate("network_change"),
            excluded_adapters=lambda: config_provider().excluded_adapters,
        )
        context.scheduler = TunnelScheduler(engine, context.watcher, config_provider)

    return context
