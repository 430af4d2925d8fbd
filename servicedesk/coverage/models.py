from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Sequence


class CoverageStatus(str, Enum):
    AVAILABLE = "available"
    PARTIAL = "partial"
    COMING_SOON = "coming_soon"
    NOT_AVAILABLE = "not_available"
    UNKNOWN = "unknown"


CONTRACTABLE_STATUSES = frozenset({CoverageStatus.AVAILABLE, CoverageStatus.PARTIAL})

STATUS_MESSAGES: dict[CoverageStatus, str] = {
    CoverageStatus.AVAILABLE: "¡Excelente! Tenemos cobertura completa en tu zona.",
    CoverageStatus.PARTIAL: (
        "Tenemos cobertura parcial en tu zona. Algunas colonias pueden no estar disponibles."
    ),
    CoverageStatus.COMING_SOON: (
        "Próximamente tendremos cobertura en tu zona. ¡Regístrate para ser notificado!"
    ),
    CoverageStatus.NOT_AVAILABLE: (
        "Actualmente no tenemos cobertura en tu zona. Estamos expandiendo nuestra red."
    ),
    CoverageStatus.UNKNOWN: (
        "No tenemos información de cobertura para este código postal. Contáctanos para verificar."
    ),
}
DEFAULT_STATUS_MESSAGE = "Consulta la cobertura de tu zona."


@dataclass(slots=True)
class MunicipalityInfo:
    id: str
    name: str
    state: str


@dataclass(slots=True)
class CommunityInfo:
    id: str
    name: str
    coverage_status: str
    estimated_date: date | None = None


@dataclass(slots=True)
class PackageInfo:
    """Public view of a service package offered in a covered zone."""

    id: str
    name: str
    type: str
    monthly_price: Decimal
    speed_mbps: int | None = None
    channels_count: int | None = None
    features: Sequence[str] = field(default_factory=list)


@dataclass(slots=True)
class CoverageResult:
    """Outcome of a postal code coverage lookup."""

    found: bool
    postal_code: str
    coverage_status: str
    message: str
    contact_recommended: bool
    can_contract: bool = False
    municipality: MunicipalityInfo | None = None
    communities: Sequence[CommunityInfo] = field(default_factory=list)
    packages: Sequence[PackageInfo] | None = None
