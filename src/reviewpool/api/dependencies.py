"""Request dependencies shared by the route modules."""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from ..core.config.settings import ReviewpoolConfig
from ..core.deadlines import DeadlineMonitorService
from ..core.pool import ReviewerPoolService
from ..core.services import Services


def get_services(request: Request) -> Services:
    """Services built during application startup."""
    return request.app.state.services


def get_app_config(request: Request) -> ReviewpoolConfig:
    return request.app.state.config


def get_pool_service(services: Services = Depends(get_services)) -> ReviewerPoolService:
    return services.pool


def get_deadline_service(services: Services = Depends(get_services)) -> DeadlineMonitorService:
    return services.deadlines


async def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    config: ReviewpoolConfig = Depends(get_app_config),
) -> None:
    """Reject scheduler calls without ``Authorization: Bearer <cron_secret>``."""
    if not config.cron_secret or authorization != f"Bearer {config.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")
