# app/x402/pricing.py
"""
Price table for x402-protected endpoints.

Every priced endpoint belongs to one of two tiers. Tier prices come from the
immutable GateConfig (see app/core/config.py):
- standard: STANDARD_PRICE_STX micro-STX / STANDARD_PRICE_SBTC sats
- premium: PREMIUM_PRICE_STX micro-STX / PREMIUM_PRICE_SBTC sats
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from app.core.config import GateConfig, TierPrice


class PricingTier(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"


@dataclass(frozen=True)
class PricedResource:
    method: str
    path: str
    tier: PricingTier
    description: str


# Protected endpoints configuration
# These endpoints always require an x402 payment
PROTECTED_ENDPOINTS: Tuple[PricedResource, ...] = (
    PricedResource("GET", "/yield-opportunities", PricingTier.STANDARD, "sBTC yield opportunities ranked by APY"),
    PricedResource("GET", "/peg-health", PricingTier.STANDARD, "sBTC/BTC peg health"),
    PricedResource("GET", "/alpha", PricingTier.PREMIUM, "Algorithmic sBTC alpha signals"),
    PricedResource("POST", "/simulate", PricingTier.PREMIUM, "sBTC position simulation"),
    PricedResource("POST", "/agent-intel", PricingTier.PREMIUM, "Agent allocation strategy"),
)


def _normalize_path(path: str) -> str:
    return path.rstrip("/") or "/"


_RESOURCE_INDEX: Dict[Tuple[str, str], PricedResource] = {
    (resource.method, _normalize_path(resource.path)): resource for resource in PROTECTED_ENDPOINTS
}


def get_priced_resource(method: str, path: str) -> Optional[PricedResource]:
    """Priced resource for a request, or None for free endpoints."""
    return _RESOURCE_INDEX.get((method.upper(), _normalize_path(path)))


def get_tier_price(tier: PricingTier, config: GateConfig) -> TierPrice:
    if tier is PricingTier.PREMIUM:
        return config.pricing.premium
    return config.pricing.standard


def get_price_quote(resource: PricedResource, config: GateConfig) -> Dict[str, object]:
    """
    Price quote for a priced resource.

    Returns:
        Dict containing:
        - resource: path of the resource
        - tier: pricing tier name
        - price_stx: price in micro-STX
        - price_sbtc: price in sats
        - description: human readable description
    """
    price = get_tier_price(resource.tier, config)
    return {
        "resource": resource.path,
        "tier": resource.tier.value,
        "price_stx": price.stx,
        "price_sbtc": price.sbtc,
        "description": resource.description,
    }


def describe_paid_endpoints(config: GateConfig) -> list:
    """Paid endpoint listing for the service description at GET /."""
    listing = []
    for resource in PROTECTED_ENDPOINTS:
        quote = get_price_quote(resource, config)
        listing.append({
            "method": resource.method,
            "path": resource.path,
            "price": f"{quote['price_stx']} μSTX",
            "priceSbtc": f"{quote['price_sbtc']} sats",
        })
    return listing
