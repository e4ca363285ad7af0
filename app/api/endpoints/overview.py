# app/api/endpoints/overview.py
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
from typing import Any, Dict
import asyncio
import logging

from app.core.config import GateConfig
from app.services import analytics, market_data, protocols as protocol_registry
from app.x402.gate import format_timestamp
from app.x402.middleware import get_request_gate_config

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/overview", summary="Free sBTC Ecosystem Overview")
async def overview(config: GateConfig = Depends(get_request_gate_config)) -> Dict[str, Any]:
    """
    Free snapshot of sBTC supply, price and the DeFi ecosystem.

    Upstream failures degrade to fallback values; this endpoint never
    fails because a data source is down.
    """
    metrics, protocols, btc_price = await asyncio.gather(
        market_data.fetch_sbtc_metrics(token_contract=config.sbtc.token),
        protocol_registry.fetch_protocol_data(),
        market_data.fetch_btc_price(),
    )
    peg = analytics.calculate_peg_health(btc_price, metrics.price)
    best = analytics.highest_yield(protocols)

    logger.info("Overview endpoint accessed.")
    return {
        "timestamp": format_timestamp(datetime.now(timezone.utc)),
        "sbtc": {
            "totalSupply": metrics.total_supply,
            "holders": metrics.holders,
            "priceUsd": metrics.price,
            "volume24h": metrics.volume_24h,
            "pegHealth": {
                "pegStatus": peg.peg_status,
                "ratio": peg.peg_ratio,
            },
        },
        "ecosystem": {
            "totalTvl": analytics.total_tvl(protocols),
            "protocolCount": len(protocols),
            "bestApy": best.apy_estimate if best else None,
            "protocols": [p.protocol for p in protocols],
        },
        "network": f"stacks-{config.network}",
        "message": "Full yield details and alpha signals available via paid endpoints",
    }
