# app/api/endpoints/premium.py
"""
Priced endpoints.

X402Middleware has already verified the payment by the time any handler
here runs; handlers only gather data and echo the payer back.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from app.api.models.intel import AgentIntelRequest, SimulateRequest
from app.core.config import GateConfig
from app.services import analytics, market_data, protocols as protocol_registry
from app.x402.gate import PaymentVerificationResult, format_timestamp
from app.x402.middleware import get_request_gate_config, get_verified_payment

router = APIRouter()
logger = logging.getLogger(__name__)


def _now() -> str:
    return format_timestamp(datetime.now(timezone.utc))


@router.get("/yield-opportunities", summary="sBTC Yield Opportunities")
async def yield_opportunities(
    payment: PaymentVerificationResult = Depends(get_verified_payment),
    config: GateConfig = Depends(get_request_gate_config),
) -> Dict[str, Any]:
    """
    Ranks sBTC DeFi protocols by APY with TVL share and risk score.
    """
    protocols, metrics = await asyncio.gather(
        protocol_registry.fetch_protocol_data(),
        market_data.fetch_sbtc_metrics(token_contract=config.sbtc.token),
    )
    ranking = analytics.rank_yield_opportunities(protocols)

    return {
        "timestamp": _now(),
        "paymentVerified": True,
        "caller": payment.payer,
        "sbtcPrice": metrics.price,
        **ranking,
    }


@router.get("/peg-health", summary="sBTC Peg Health")
async def peg_health(
    payment: PaymentVerificationResult = Depends(get_verified_payment),
    config: GateConfig = Depends(get_request_gate_config),
) -> Dict[str, Any]:
    """
    Compares the sBTC market price against BTC and classifies the peg.
    """
    btc_price, metrics = await asyncio.gather(
        market_data.fetch_btc_price(),
        market_data.fetch_sbtc_metrics(token_contract=config.sbtc.token),
    )
    peg = analytics.calculate_peg_health(btc_price, metrics.price)

    return {
        "timestamp": _now(),
        "paymentVerified": True,
        "caller": payment.payer,
        "peg": {
            "status": peg.peg_status,
            "ratio": peg.peg_ratio,
            "spread": peg.spread,
            "spreadFormatted": analytics.format_spread(peg.spread),
            "confidence": peg.confidence,
        },
        "prices": {
            "btc": peg.btc_price,
            "sbtc": peg.sbtc_price,
            "difference": peg.sbtc_price - peg.btc_price,
        },
        "sbtcMetrics": {
            "totalSupply": metrics.total_supply,
            "supplyValueUsd": metrics.total_supply * peg.btc_price,
            "holders": metrics.holders,
            "volume24h": metrics.volume_24h,
        },
        "analysis": analytics.describe_peg(peg),
    }


@router.get("/alpha", summary="sBTC Alpha Signals")
async def alpha(
    payment: PaymentVerificationResult = Depends(get_verified_payment),
    config: GateConfig = Depends(get_request_gate_config),
) -> Dict[str, Any]:
    """
    Rule-based opportunity, warning and info signals ranked by confidence.
    """
    protocols, btc_price, metrics = await asyncio.gather(
        protocol_registry.fetch_protocol_data(),
        market_data.fetch_btc_price(),
        market_data.fetch_sbtc_metrics(token_contract=config.sbtc.token),
    )
    peg = analytics.calculate_peg_health(btc_price, metrics.price)
    report = analytics.build_alpha_report(protocols, peg, metrics)

    return {
        "timestamp": _now(),
        "paymentVerified": True,
        "caller": payment.payer,
        **report,
    }


@router.post("/simulate", summary="Simulate an sBTC Position")
async def simulate(
    body: SimulateRequest,
    payment: PaymentVerificationResult = Depends(get_verified_payment),
) -> Any:
    """
    Previews deposit, loop, borrow or unwind outcomes without executing them.

    Returns 400 with the list of known protocols when `protocol` matches none.
    """
    btc_price, protocols = await asyncio.gather(
        market_data.fetch_btc_price(),
        protocol_registry.fetch_protocol_data(),
    )

    protocol = protocol_registry.find_protocol(protocols, body.protocol)
    if protocol is None:
        logger.info(f"Simulation requested for unknown protocol '{body.protocol}'")
        return JSONResponse(
            status_code=400,
            content={
                "error": "Protocol not found",
                "available": [p.protocol for p in protocols],
            },
        )

    simulation = analytics.simulate_position(
        action=body.action,
        protocol=protocol,
        amount_btc=body.amountBtc,
        btc_price=btc_price,
        leverage=body.leverage,
    )

    return {
        "timestamp": _now(),
        "paymentVerified": True,
        "caller": payment.payer,
        **simulation,
    }


@router.post("/agent-intel", summary="Agent Allocation Strategy")
async def agent_intel(
    body: AgentIntelRequest,
    payment: PaymentVerificationResult = Depends(get_verified_payment),
    config: GateConfig = Depends(get_request_gate_config),
) -> Dict[str, Any]:
    """
    Builds an APY-weighted allocation for the requested risk tolerance,
    with deposit actions an autonomous agent can execute.
    """
    protocols, btc_price, metrics = await asyncio.gather(
        protocol_registry.fetch_protocol_data(),
        market_data.fetch_btc_price(),
        market_data.fetch_sbtc_metrics(token_contract=config.sbtc.token),
    )
    peg = analytics.calculate_peg_health(btc_price, metrics.price)
    plan = analytics.build_agent_strategy(
        protocols=protocols,
        risk_tolerance=body.riskTolerance,
        capital_btc=body.capitalBtc,
        btc_price=btc_price,
    )

    return {
        "timestamp": _now(),
        "paymentVerified": True,
        "agentId": payment.payer,
        "input": {
            "capitalBtc": body.capitalBtc,
            "capitalUsd": body.capitalBtc * btc_price,
            "riskTolerance": body.riskTolerance,
        },
        "market": {
            "btcPrice": btc_price,
            "sbtcPegStatus": peg.peg_status,
            "sbtcSpread": peg.spread,
        },
        **plan,
        "whyStacks": {
            "reason": "Agent can simulate all positions before execution (Clarity is decidable)",
            "benefit": "Zero failed transactions, predictable outcomes, trustless BTC exposure",
        },
    }
