"""Postal code coverage lookup."""

from .models import CoverageResult, CoverageStatus, PackageInfo
from .service import CoverageLookupError, CoverageService, InvalidPostalCodeError

__all__ = [
    "CoverageLookupError",
    "CoverageResult",
    "CoverageService",
    "CoverageStatus",
    "InvalidPostalCodeError",
    "PackageInfo",
]
