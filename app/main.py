# app/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from datetime import datetime, timezone
from typing import Optional
import logging

from app.core.config import GateConfig, settings, get_gate_config
from app.api.endpoints import overview, premium
from app.services.hiro_api import HiroClient
from app.x402.gate import format_timestamp
from app.x402.middleware import X402Middleware
from app.x402.pricing import describe_paid_endpoints

# Configure basic logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


def create_app(
    config: Optional[GateConfig] = None,
    ledger_client: Optional[HiroClient] = None,
) -> FastAPI:
    """
    Build the API with its payment gate.

    Args:
        config: Payment configuration, built from settings if omitted
        ledger_client: Hiro client used to verify payments (tests inject fakes)
    """
    gate_config = config or get_gate_config()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description=settings.PROJECT_DESCRIPTION,
        version=settings.VERSION,
    )
    # Handlers read the same config through get_request_gate_config
    app.state.gate_config = gate_config

    app.include_router(overview.router, tags=["free"])
    app.include_router(premium.router, tags=["paid"])

    # Middleware added last runs first: CORS wraps the payment gate so
    # 402/403 responses carry CORS headers too.
    app.add_middleware(X402Middleware, config=gate_config, ledger_client=ledger_client)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.CORS_ALLOW_ORIGINS.split(",") if origin.strip()],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", summary="Service Description", tags=["free"])
    def read_root():
        """ Describes the API, its free and paid endpoints and the payment contract. """
        logger.info("Root endpoint '/' accessed.")
        return {
            "name": settings.PROJECT_NAME,
            "description": settings.PROJECT_DESCRIPTION,
            "version": settings.VERSION,
            "why_stacks": {
                "message": "Stacks is the only Bitcoin L2 with smart contracts",
                "key_points": [
                    "sBTC: Trustless 1:1 BTC peg via threshold signatures",
                    "Clarity: Decidable smart contracts - no runtime surprises",
                    "Bitcoin finality: Transactions settle on Bitcoin",
                    "x402: Native micropayments without accounts",
                ],
            },
            "endpoints": {
                "free": ["/overview", "/health"],
                "paid": describe_paid_endpoints(gate_config),
            },
            "contract": gate_config.contract.contract_id,
        }

    @app.get("/health", summary="Health Check", tags=["free"])
    def health():
        """ Basic health check endpoint. """
        return {
            "status": "ok",
            "timestamp": format_timestamp(datetime.now(timezone.utc)),
            "chain": f"stacks-{gate_config.network}",
        }

    return app


app = create_app()
