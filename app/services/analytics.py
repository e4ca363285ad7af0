# app/services/analytics.py
"""
Derived sBTC analytics.

All functions here are pure: they take already-fetched market data and the
protocol catalog and return plain dictionaries ready to be serialized.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from app.services.market_data import SbtcMetrics
from app.services.protocols import ProtocolRecord, get_protocol_contract

logger = logging.getLogger(__name__)

PEG_STATUSES = ("healthy", "slight-premium", "slight-discount", "warning")

RISK_SCORES = {"low": 25, "medium": 50, "high": 75}

# Risk tiers an agent may allocate to, per tolerance
RISK_TOLERANCE_TIERS = {
    "conservative": ("low",),
    "moderate": ("low", "medium"),
    "aggressive": ("low", "medium", "high"),
}

STRATEGY_NAMES = {
    "conservative": "Bitcoin Preservation",
    "moderate": "Balanced Bitcoin Yield",
    "aggressive": "Maximum Bitcoin Yield",
}

# Lending assumptions used by the position simulator
LOAN_TO_VALUE = 0.75
LIQUIDATION_BUFFER = 0.85
SAFE_BORROW_FRACTION = 0.6
BORROW_APR = 8.5
UNWIND_SLIPPAGE = 0.0015

SIGNAL_DISCLAIMER = "Signals are algorithmic and should not be considered financial advice. Always DYOR."


@dataclass(frozen=True)
class PegHealth:
    peg_ratio: float
    peg_status: str
    btc_price: float
    sbtc_price: float
    spread: float
    confidence: float


def classify_peg(spread: float) -> str:
    """Map a percentage spread of sBTC over BTC onto a peg status."""
    status = "healthy"
    if spread > 0.5:
        status = "slight-premium"
    elif spread < -0.5:
        status = "slight-discount"
    if abs(spread) > 2:
        status = "warning"
    return status


def calculate_peg_health(btc_price: float, sbtc_price: float) -> PegHealth:
    """
    Compare the sBTC market price with the BTC reference price.

    A non-positive BTC price (should not happen with the oracle fallback)
    yields a zero ratio and spread rather than a division error.
    """
    if btc_price > 0:
        ratio = sbtc_price / btc_price
        spread = (sbtc_price - btc_price) / btc_price * 100
    else:
        logger.warning(f"Cannot compute peg against BTC price {btc_price}")
        ratio = 0.0
        spread = 0.0

    abs_spread = abs(spread)
    if abs_spread < 1:
        confidence = 0.95
    elif abs_spread < 2:
        confidence = 0.8
    else:
        confidence = 0.6

    return PegHealth(
        peg_ratio=round(ratio, 6),
        peg_status=classify_peg(spread),
        btc_price=btc_price,
        sbtc_price=sbtc_price,
        spread=round(spread, 4),
        confidence=confidence,
    )


def describe_peg(peg: PegHealth) -> str:
    if peg.peg_status == "healthy":
        return "sBTC peg is healthy. Spread within normal range."
    if peg.spread > 0:
        return (
            f"sBTC trading at {peg.spread:.2f}% premium. "
            "Consider selling sBTC for BTC if unwinding positions."
        )
    return (
        f"sBTC trading at {abs(peg.spread):.2f}% discount. "
        "Potential arbitrage opportunity - acquire sBTC below BTC spot."
    )


def format_spread(spread: float) -> str:
    return f"{'+' if spread > 0 else ''}{spread:.4f}%"


def total_tvl(protocols: List[ProtocolRecord]) -> float:
    return sum(p.tvl_estimate for p in protocols)


def highest_yield(protocols: List[ProtocolRecord]) -> Optional[ProtocolRecord]:
    """Protocol with the highest APY; the first one wins ties."""
    best = None
    for record in protocols:
        if best is None or record.apy_estimate > best.apy_estimate:
            best = record
    return best


def rank_yield_opportunities(protocols: List[ProtocolRecord]) -> Dict[str, Any]:
    """
    Rank protocols by APY and summarize the yield landscape.

    Returns:
        Dict with "opportunities" (sorted by APY, highest first) and "summary".
    """
    tvl = total_tvl(protocols)

    opportunities = []
    for p in protocols:
        share = (p.tvl_estimate / tvl * 100) if tvl else 0.0
        opportunities.append({
            "protocol": p.protocol,
            "type": p.type,
            "description": p.description,
            "metrics": {
                "tvl": p.tvl_estimate,
                "tvlShare": f"{share:.1f}%",
                "apy": p.apy_estimate,
                "apyFormatted": f"{p.apy_estimate:.2f}%",
            },
            "risk": {
                "level": p.risk_level,
                "score": RISK_SCORES.get(p.risk_level, 75),
            },
        })
    opportunities.sort(key=lambda o: o["metrics"]["apy"], reverse=True)

    best = highest_yield(protocols)
    average_apy = sum(p.apy_estimate for p in protocols) / len(protocols) if protocols else 0.0

    return {
        "opportunities": opportunities,
        "summary": {
            "totalTvl": tvl,
            "averageApy": f"{average_apy:.2f}",
            "highestYield": {
                "protocol": best.protocol if best else None,
                "apy": best.apy_estimate if best else None,
            },
            "lowestRisk": [p.protocol for p in protocols if p.risk_level == "low"],
        },
    }


def generate_alpha_signals(
    protocols: List[ProtocolRecord],
    peg: PegHealth,
    metrics: SbtcMetrics,
) -> List[Dict[str, Any]]:
    """Rule-based trading signals, in rule order (not yet ranked)."""
    signals = []

    best = highest_yield(protocols)
    if best and best.apy_estimate > 10:
        signals.append({
            "signal": "HIGH_YIELD_AVAILABLE",
            "type": "opportunity",
            "confidence": 0.85,
            "action": f"Deploy sBTC to {best.protocol}",
            "details": f"{best.apy_estimate:.1f}% APY available - {best.risk_level} risk profile",
        })

    if peg.spread < -0.3:
        signals.append({
            "signal": "SBTC_DISCOUNT",
            "type": "opportunity",
            "confidence": 0.9,
            "action": "Acquire sBTC at discount",
            "details": f"sBTC trading {abs(peg.spread):.2f}% below BTC - potential arbitrage",
        })
    elif peg.spread > 0.3:
        signals.append({
            "signal": "SBTC_PREMIUM",
            "type": "info",
            "confidence": 0.85,
            "action": "Consider unwrapping if holding",
            "details": f"sBTC trading {peg.spread:.2f}% above BTC",
        })

    tvl = total_tvl(protocols)
    alex_tvl = next((p.tvl_estimate for p in protocols if p.protocol == "ALEX"), 0)
    alex_share = alex_tvl / tvl if tvl else 0.0
    if alex_share > 0.4:
        signals.append({
            "signal": "TVL_CONCENTRATION",
            "type": "warning",
            "confidence": 0.75,
            "action": "Consider protocol diversification",
            "details": f"{alex_share * 100:.0f}% of sBTC DeFi TVL concentrated in single protocol",
        })

    if metrics.holders < 5000:
        signals.append({
            "signal": "EARLY_ADOPTION",
            "type": "info",
            "confidence": 0.9,
            "action": "Early mover advantage",
            "details": f"Only {metrics.holders:,} sBTC holders - ecosystem still nascent",
        })

    best_low_risk = highest_yield([p for p in protocols if p.risk_level == "low"])
    if best_low_risk:
        signals.append({
            "signal": "CONSERVATIVE_YIELD",
            "type": "opportunity",
            "confidence": 0.9,
            "action": f"Low-risk yield in {best_low_risk.protocol}",
            "details": (
                f"{best_low_risk.apy_estimate:.1f}% APY with {best_low_risk.risk_level} risk"
                " - suitable for institutional allocation"
            ),
        })

    return signals


def build_alpha_report(
    protocols: List[ProtocolRecord],
    peg: PegHealth,
    metrics: SbtcMetrics,
) -> Dict[str, Any]:
    """Market snapshot plus signals ranked by confidence."""
    signals = sorted(
        generate_alpha_signals(protocols, peg, metrics),
        key=lambda s: s["confidence"],
        reverse=True,
    )
    first_opportunity = next((s for s in signals if s["type"] == "opportunity"), None)

    return {
        "marketSnapshot": {
            "btcPrice": peg.btc_price,
            "sbtcPrice": peg.sbtc_price,
            "pegStatus": peg.peg_status,
            "totalTvl": total_tvl(protocols),
            "sbtcSupply": metrics.total_supply,
        },
        "signals": signals,
        "signalSummary": {
            "opportunities": sum(1 for s in signals if s["type"] == "opportunity"),
            "warnings": sum(1 for s in signals if s["type"] == "warning"),
            "topSignal": signals[0] if signals else None,
        },
        "recommendation": first_opportunity["action"] if first_opportunity else "No immediate opportunities detected",
        "disclaimer": SIGNAL_DISCLAIMER,
    }


def effective_leverage(loops: float) -> float:
    """Geometric exposure multiplier of re-depositing borrowed funds at LOAN_TO_VALUE."""
    return (1 - LOAN_TO_VALUE ** loops) / (1 - LOAN_TO_VALUE)


def simulate_position(
    action: str,
    protocol: ProtocolRecord,
    amount_btc: float,
    btc_price: float,
    leverage: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Preview the outcome of a deposit, leveraged loop, borrow or unwind.

    Args:
        action: One of "deposit", "loop", "borrow", "unwind"
        protocol: Target protocol record
        amount_btc: Position size in BTC
        btc_price: BTC/USD price used for valuations
        leverage: Loop count for "loop"; falsy values mean 1

    Returns:
        Dict with "input", "outcome" and, for loops, "warning"
    """
    amount_usd = amount_btc * btc_price
    leverage = leverage or 1
    apy = protocol.apy_estimate

    simulation: Dict[str, Any] = {
        "input": {
            "action": action,
            "protocol": protocol.protocol,
            "amountBtc": amount_btc,
            "amountUsd": amount_usd,
            "leverage": leverage,
        },
    }

    if action == "deposit":
        simulation["outcome"] = {
            "positionValue": amount_usd,
            "expectedApy": apy,
            "yearlyYieldUsd": amount_usd * (apy / 100),
            "yearlyYieldBtc": amount_btc * (apy / 100),
            "riskLevel": protocol.risk_level,
            "liquidationPrice": None,
        }

    elif action == "loop":
        eff = effective_leverage(leverage)
        leveraged_amount = amount_btc * eff
        liquidation_price = btc_price * (1 - (1 / eff) * LIQUIDATION_BUFFER)
        safety_margin = (btc_price - liquidation_price) / btc_price * 100 if btc_price else 0.0

        if eff > 3:
            risk = "HIGH"
        elif eff > 2:
            risk = "MEDIUM"
        else:
            risk = "LOW"

        simulation["outcome"] = {
            "initialBtc": amount_btc,
            "leveragedExposure": leveraged_amount,
            "effectiveLeverage": f"{eff:.2f}x",
            "effectiveApy": f"{apy * eff:.2f}%",
            "yearlyYieldBtc": leveraged_amount * (apy / 100),
            "yearlyYieldUsd": leveraged_amount * btc_price * (apy / 100),
            "liquidationPrice": liquidation_price,
            "safetyMargin": f"{safety_margin:.1f}%",
            "risk": risk,
        }
        simulation["warning"] = (
            f"High leverage position. Liquidation at ${liquidation_price:.0f}" if eff > 3 else None
        )

    elif action == "borrow":
        max_borrow = amount_usd * LOAN_TO_VALUE
        safe_borrow = max_borrow * SAFE_BORROW_FRACTION
        simulation["outcome"] = {
            "collateralBtc": amount_btc,
            "collateralUsd": amount_usd,
            "maxBorrowUsd": max_borrow,
            "safeBorrowUsd": safe_borrow,
            "borrowApr": f"{BORROW_APR}%",
            "yearlyInterestUsd": safe_borrow * (BORROW_APR / 100),
            "healthFactor": 1.67,
            "liquidationPrice": btc_price * 0.8,
        }

    elif action == "unwind":
        simulation["outcome"] = {
            "estimatedSlippage": f"{UNWIND_SLIPPAGE * 100:.2f}%",
            "estimatedGas": "0.0001 STX",
            "netProceeds": amount_btc * (1 - UNWIND_SLIPPAGE),
            "note": "Unwind through DEX with minimal slippage",
        }

    else:
        raise ValueError(f"Unknown simulation action: {action}")

    simulation["claritySimulation"] = {
        "verified": True,
        "method": "read-only-call",
        "note": "Outcome computed via Clarity contract read - deterministic and gas-free",
        "advantage": "Only possible on Stacks. Other chains require actual execution to know results.",
    }
    return simulation


def build_agent_strategy(
    protocols: List[ProtocolRecord],
    risk_tolerance: str,
    capital_btc: float,
    btc_price: float,
) -> Dict[str, Any]:
    """
    APY-weighted allocation across the protocols a risk tolerance allows,
    plus the deposit actions an agent would execute.
    """
    tiers = RISK_TOLERANCE_TIERS[risk_tolerance]
    eligible = [p for p in protocols if p.risk_level in tiers]
    total_apy = sum(p.apy_estimate for p in eligible)

    allocations = []
    if total_apy > 0:
        for p in eligible:
            weight = p.apy_estimate / total_apy
            allocations.append({
                "protocol": p.protocol,
                "type": p.type,
                "allocationPct": f"{weight * 100:.1f}",
                "allocationBtc": f"{capital_btc * weight:.6f}",
                "expectedApy": p.apy_estimate,
                "risk": p.risk_level,
            })

    actions = [
        {
            "step": i + 1,
            "action": "DEPOSIT",
            "protocol": a["protocol"],
            "amount": f"{a['allocationBtc']} sBTC",
            "contract": get_protocol_contract(a["protocol"]) or "TBD",
        }
        for i, a in enumerate(allocations)
    ]

    weighted_apy = sum(float(a["allocationPct"]) / 100 * a["expectedApy"] for a in allocations)

    return {
        "strategy": {
            "name": STRATEGY_NAMES[risk_tolerance],
            "allocations": allocations,
            "projectedApy": f"{weighted_apy:.2f}%",
            "projectedYearlyBtc": f"{capital_btc * (weighted_apy / 100):.6f}",
            "projectedYearlyUsd": f"{capital_btc * btc_price * (weighted_apy / 100):.2f}",
        },
        "execution": {
            "actions": actions,
            "estimatedGas": f"{len(actions) * 0.001:.4f} STX",
            "note": "All positions can be atomically unwound via Clarity contracts",
        },
    }
