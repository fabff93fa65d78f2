"""
Utility endpoints: configuration reload.
"""

from fastapi import APIRouter, Depends, status
from pydantic import ValidationError

from api.middleware.auth import verify_api_key
from api.middleware.error_handler import APIError
from api.models.schemas import ConfigReloadResponse
from api.routes.tunnel import get_context
from core.config import reload_config
from core.context import AppContext
from core.logger import get_logger

router = APIRouter(tags=["utilities"], dependencies=[Depends(verify_api_key)])
logger = get_logger(__name__)


@router.post("/config/reload", response_model=ConfigReloadResponse)
async def reload(context: AppContext = Depends(get_context)):
    """
    Re-read `.env` and the environment.

    Trust rules apply from the next cycle; timer and watcher intervals are
    rescheduled immediately. Tunnel name and backend need a restart.
    """
    try:
        config = reload_config()
    except ValidationError as e:
        raise APIError(
            "Configuration is invalid; previous settings remain active",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="invalid_config",
            details={"errors": [err["msg"] for err in e.errors()]}
        )

    if context.scheduler is not None:
        context.scheduler.reschedule()

    logger.info(
        "Configuration reloaded",
        trusted_ssids=config.trusted_ssids,
        trusted_ip_ranges=config.trusted_ip_ranges
    )
    return ConfigReloadResponse(
        reloaded=True,
        trusted_ssids=config.trusted_ssids,
        trusted_ip_ranges=config.trusted_ip_ranges,
        timer_enabled=config.timer_enabled,
        timer_interval_seconds=config.timer_interval_seconds,
        network_watch_enabled=config.network_watch_enabled
    )
