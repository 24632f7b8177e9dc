from .cache import CacheGateway, CacheTTL
from .legal_data import (
    LegalDataGateway,
    LegalDataGatewayConfig,
    UnifiedSearchParams,
    UnifiedSearchResult,
    create_legal_data_gateway,
    get_legal_data_gateway,
    overall_status,
    reset_legal_data_gateway,
)

__all__ = [
    "CacheGateway",
    "CacheTTL",
    "LegalDataGateway",
    "LegalDataGatewayConfig",
    "UnifiedSearchParams",
    "UnifiedSearchResult",
    "create_legal_data_gateway",
    "get_legal_data_gateway",
    "overall_status",
    "reset_legal_data_gateway",
]
