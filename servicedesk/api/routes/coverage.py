from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, ConfigDict

from servicedesk.api.responses import error_response, rate_limited_response
from servicedesk.coverage import CoverageLookupError, CoverageResult, InvalidPostalCodeError
from servicedesk.dependencies.services import CoverageServiceDep, RateLimiterDep
from servicedesk.security import RateLimitExceededError, get_client_ip

router = APIRouter(prefix="/coverage", tags=["coverage"])


class MunicipalityModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    state: str


class CommunityModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    coverage_status: str
    estimated_date: date | None = None


class PackageModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: str
    speed_mbps: int | None = None
    channels_count: int | None = None
    monthly_price: Decimal
    features: list[str] = []


class CoverageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    found: bool
    postal_code: str
    coverage_status: str
    message: str
    contact_recommended: bool
    can_contract: bool = False
    municipality: MunicipalityModel | None = None
    communities: list[CommunityModel] = []
    packages: list[PackageModel] | None = None


@router.get("/check", response_model=CoverageResponse, summary="Check coverage for a postal code")
async def check_coverage(
    request: Request,
    service: CoverageServiceDep,
    limiter: RateLimiterDep,
    cp: str | None = Query(default=None),
    postal_code: str | None = Query(default=None),
):
    try:
        await limiter.check("coverage_check", get_client_ip(request))
        result: CoverageResult = await service.check(cp or postal_code)
    except RateLimitExceededError as exc:
        return rate_limited_response(exc)
    except InvalidPostalCodeError as exc:
        return error_response(status.HTTP_400_BAD_REQUEST, str(exc))
    except CoverageLookupError as exc:
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
    return CoverageResponse.model_validate(result)
