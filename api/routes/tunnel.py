"""
Tunnel endpoints: status, evaluation cycle and manual actions.

Engine calls block (service commands, elevation prompts), so they run in the
threadpool via run_in_threadpool.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from api.middleware.auth import verify_api_key
from api.models.schemas import (
    ControlResponse,
    EvaluationResponse,
    InstallRequest,
    TunnelStatusResponse
)
from core.context import AppContext
from core.logger import get_logger

router = APIRouter(tags=["tunnel"], dependencies=[Depends(verify_api_key)])
logger = get_logger(__name__)


def get_context(request: Request) -> AppContext:
    return request.app.state.context


@router.get("/status", response_model=TunnelStatusResponse)
async def get_status(context: AppContext = Depends(get_context)):
    """Current tunnel status, network identity and trust, without acting."""
    report = await run_in_threadpool(context.engine.status_report)
    report["status_record"] = context.status_file.read()
    return TunnelStatusResponse(**report)


@router.post("/evaluate", response_model=EvaluationResponse)
async def evaluate(trigger: str = "api", context: AppContext = Depends(get_context)):
    """
    Run one evaluation cycle.

    Returns `evaluated: false` if another cycle was in flight (the request is
    dropped, the running cycle covers it) or the cycle failed.
    """
    outcome = await run_in_threadpool(context.engine.evaluate, trigger)
    return EvaluationResponse.from_outcome(outcome)


@router.post("/start", response_model=ControlResponse)
async def manual_start(context: AppContext = Depends(get_context)):
    """Start the tunnel and clear the manual override."""
    result = await run_in_threadpool(context.engine.manual_start, True)
    return ControlResponse.from_result(result)


@router.post("/stop", response_model=ControlResponse)
async def manual_stop(context: AppContext = Depends(get_context)):
    """Stop the tunnel and set the manual override."""
    result = await run_in_threadpool(context.engine.manual_stop, True)
    return ControlResponse.from_result(result)


@router.post("/install", response_model=ControlResponse)
async def install(
    body: Optional[InstallRequest] = None,
    context: AppContext = Depends(get_context)
):
    """Install the tunnel service; clears the manual override on success."""
    config_path = body.config_path if body else None
    result = await run_in_threadpool(context.engine.install, config_path, True)
    return ControlResponse.from_result(result)


@router.post("/uninstall", response_model=ControlResponse)
async def uninstall(context: AppContext = Depends(get_context)):
    """Remove the tunnel service."""
    result = await run_in_threadpool(context.engine.uninstall, True)
    return ControlResponse.from_result(result)
