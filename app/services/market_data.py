# app/services/market_data.py
"""
Market data for BTC and sBTC.

Every fetch is bounded by UPSTREAM_TIMEOUT_SECONDS and degrades to a fixed
fallback instead of raising:

- BTC price (CoinGecko): BTC_PRICE_FALLBACK_USD
- sBTC supply / holders (Hiro): 0
- sBTC price (Tenero): the BTC price
- sBTC 24h volume (Tenero): 0
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests
from requests.exceptions import RequestException

from app.core.config import settings
from app.services.hiro_api import HiroClient

logger = logging.getLogger(__name__)

# sBTC has 8 decimals, like BTC
SATS_PER_BTC = 10 ** 8


@dataclass(frozen=True)
class SbtcMetrics:
    total_supply: float
    holders: int
    price: float
    volume_24h: float


def _get_json(url: str, params: Optional[Dict[str, str]] = None) -> Optional[Any]:
    """GET a JSON document, returning None on any transport or decode error."""
    try:
        response = requests.get(url, params=params, timeout=settings.UPSTREAM_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response.json()
    except RequestException as e:
        logger.warning(f"Upstream request failed ({url}): {e}")
        return None
    except ValueError as e:
        logger.warning(f"Upstream returned invalid JSON ({url}): {e}")
        return None


def _to_float(value: Any) -> Optional[float]:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if result > 0 else None


async def fetch_btc_price() -> float:
    """BTC/USD spot price from CoinGecko, or the configured fallback."""
    url = urljoin(settings.COINGECKO_API_URL.rstrip("/") + "/", "api/v3/simple/price")
    data = await asyncio.to_thread(
        _get_json, url, {"ids": "bitcoin", "vs_currencies": "usd"}
    )

    price = None
    if isinstance(data, dict) and isinstance(data.get("bitcoin"), dict):
        price = _to_float(data["bitcoin"].get("usd"))

    if price is None:
        logger.warning(f"Using fallback BTC price ${settings.BTC_PRICE_FALLBACK_USD:,.0f}")
        return settings.BTC_PRICE_FALLBACK_USD
    return price


async def fetch_tenero_token(contract_id: str) -> Optional[Dict[str, Any]]:
    """Token market data (price_usd, volume_24h_usd) from Tenero."""
    url = urljoin(settings.TENERO_API_URL.rstrip("/") + "/", f"v1/stacks/tokens/{contract_id}")
    data = await asyncio.to_thread(_get_json, url)
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        return data["data"]
    return None


async def fetch_sbtc_metrics(
    hiro_client: Optional[HiroClient] = None,
    token_contract: Optional[str] = None,
) -> SbtcMetrics:
    """
    Supply, holder count, price and volume for sBTC.

    Supply metadata and market data are fetched concurrently. When Tenero
    has no price, the BTC price stands in for it.

    Args:
        hiro_client: Client used for token metadata, created when omitted
        token_contract: sBTC token contract id, SBTC_TOKEN_CONTRACT when omitted
    """
    client = hiro_client or HiroClient()
    token = token_contract or settings.SBTC_TOKEN_CONTRACT

    metadata, market = await asyncio.gather(
        client.get_token_metadata(token),
        fetch_tenero_token(token),
    )

    total_supply = 0.0
    holders = 0
    if metadata:
        supply = _to_float(metadata.get("total_supply"))
        total_supply = supply / SATS_PER_BTC if supply else 0.0
        try:
            holders = int(metadata.get("holders_count") or 0)
        except (TypeError, ValueError):
            holders = 0

    price = _to_float(market.get("price_usd")) if market else None
    if price is None:
        price = await fetch_btc_price()

    volume_24h = (_to_float(market.get("volume_24h_usd")) if market else None) or 0.0

    return SbtcMetrics(
        total_supply=total_supply,
        holders=holders,
        price=price,
        volume_24h=volume_24h,
    )
