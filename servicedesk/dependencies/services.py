from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from servicedesk.coverage import CoverageService
from servicedesk.security import RateLimiter
from servicedesk.tickets import TicketService, TrackingService


def _service(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{label} is not configured")
    return service


async def get_ticket_service(request: Request) -> TicketService:
    return _service(request, "ticket_service", "Ticket service")


async def get_tracking_service(request: Request) -> TrackingService:
    return _service(request, "tracking_service", "Tracking service")


async def get_coverage_service(request: Request) -> CoverageService:
    return _service(request, "coverage_service", "Coverage service")


async def get_rate_limiter(request: Request) -> RateLimiter:
    return _service(request, "rate_limiter", "Rate limiter")


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
TrackingServiceDep = Annotated[TrackingService, Depends(get_tracking_service)]
CoverageServiceDep = Annotated[CoverageService, Depends(get_coverage_service)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]
