from .base import (
    Capability,
    HealthStatus,
    LegalDataProvider,
    ProviderError,
    ProviderHealth,
    ProviderMetadata,
    ProviderUnavailableError,
    SearchResult,
)
from .datajud import DataJudProvider

__all__ = [
    "Capability",
    "HealthStatus",
    "LegalDataProvider",
    "ProviderError",
    "ProviderHealth",
    "ProviderMetadata",
    "ProviderUnavailableError",
    "SearchResult",
    "DataJudProvider",
]
