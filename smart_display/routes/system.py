"""
Diagnostics routes: application logs and the event bus log.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..context import AppContext
from ..dependencies import get_context, get_current_user
from ..models import User
from ..utils.log_collector import application_log_collector

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/logs")
async def get_logs(
    limit: int = Query(100, ge=1, le=1000),
    level: Optional[str] = None,
    search: Optional[str] = None,
    logger_name: Optional[str] = None,
    user: User = Depends(get_current_user),
):
    """Recent application logs, newest last."""
    return application_log_collector.get_logs(limit=limit, level=level, search=search, logger_name=logger_name)


@router.get("/logs/stats")
async def get_log_stats(user: User = Depends(get_current_user)):
    return application_log_collector.get_stats()


@router.get("/events")
async def get_events(
    limit: int = Query(100, ge=1, le=1000),
    event_filter: Optional[str] = None,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    return {
        "events": ctx.event_bus.get_logs(limit=limit, event_filter=event_filter),
        "stats": ctx.event_bus.get_stats(),
    }
