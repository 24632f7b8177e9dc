"""Juriscan: créditos, cobrança via Stripe e dados jurídicos (DataJud/CNJ)."""

__all__ = [
    "errors",
    "gateways",
    "integrations",
    "models",
    "persistence",
    "services",
    "utils",
]
__version__ = "0.1.0"
