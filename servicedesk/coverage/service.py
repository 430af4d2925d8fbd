"""Postal code coverage lookup for prospective customers."""

from __future__ import annotations

import logging
import re

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from servicedesk.db.models import (
    CommunityTable,
    MunicipalityTable,
    PostalCodeTable,
    ServicePackageTable,
)

from .models import (
    CONTRACTABLE_STATUSES,
    DEFAULT_STATUS_MESSAGE,
    STATUS_MESSAGES,
    CommunityInfo,
    CoverageResult,
    CoverageStatus,
    MunicipalityInfo,
    PackageInfo,
)

logger = logging.getLogger(__name__)

POSTAL_CODE_PATTERN = re.compile(r"^\d{5}$")


class InvalidPostalCodeError(ValueError):
    """Raised when the postal code is missing or not five digits."""


class CoverageLookupError(RuntimeError):
    """Raised when the coverage tables could not be read."""


def _coverage_status(raw: str) -> CoverageStatus | None:
    try:
        return CoverageStatus(raw)
    except ValueError:
        return None


class CoverageService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def check(self, postal_code: str | None) -> CoverageResult:
        code = (postal_code or "").strip()
        if not code:
            raise InvalidPostalCodeError("Se requiere código postal")
        if not POSTAL_CODE_PATTERN.match(code):
            raise InvalidPostalCodeError("Código postal inválido")

        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(
                        select(PostalCodeTable).where(
                            PostalCodeTable.code == code,
                            PostalCodeTable.is_active.is_(True),
                        )
                    )
                ).scalars().first()
                if row is None:
                    return CoverageResult(
                        found=False,
                        postal_code=code,
                        coverage_status=CoverageStatus.UNKNOWN.value,
                        message=STATUS_MESSAGES[CoverageStatus.UNKNOWN],
                        contact_recommended=True,
                    )

                municipality = await session.get(MunicipalityTable, row.municipality_id)
                communities = (
                    await session.execute(
                        select(CommunityTable)
                        .where(CommunityTable.postal_code_id == row.id)
                        .order_by(CommunityTable.name)
                    )
                ).scalars().all()

                status = _coverage_status(row.coverage_status)
                packages = None
                if status in CONTRACTABLE_STATUSES:
                    statement = select(ServicePackageTable).where(ServicePackageTable.is_active.is_(True))
                    if row.available_packages:
                        statement = statement.where(ServicePackageTable.id.in_(list(row.available_packages)))
                    package_rows = (
                        await session.execute(statement.order_by(ServicePackageTable.monthly_price))
                    ).scalars().all()
                    packages = [_package_info(item) for item in package_rows]
        except SQLAlchemyError as exc:
            logger.exception("Coverage lookup failed for %s", code)
            raise CoverageLookupError("Error al verificar cobertura") from exc

        return CoverageResult(
            found=True,
            postal_code=code,
            coverage_status=row.coverage_status,
            message=STATUS_MESSAGES.get(status, DEFAULT_STATUS_MESSAGE),
            contact_recommended=status != CoverageStatus.AVAILABLE,
            can_contract=status in CONTRACTABLE_STATUSES,
            municipality=(
                MunicipalityInfo(id=municipality.id, name=municipality.name, state=municipality.state)
                if municipality is not None
                else None
            ),
            communities=[
                CommunityInfo(
                    id=item.id,
                    name=item.name,
                    coverage_status=item.coverage_status,
                    estimated_date=item.estimated_date,
                )
                for item in communities
            ],
            packages=packages,
        )


def _package_info(row: ServicePackageTable) -> PackageInfo:
    return PackageInfo(
        id=row.id,
        name=row.name,
        type=row.type,
        monthly_price=row.monthly_price,
        speed_mbps=row.speed_mbps,
        channels_count=row.channels_count,
        features=list(row.features or []),
    )
