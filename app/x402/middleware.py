# app/x402/middleware.py
"""
FastAPI middleware for x402 payment verification.

This module provides HTTP middleware that:
1. Intercepts requests to priced endpoints
2. Returns 402 Payment Required with a challenge when X-Payment is missing
3. Verifies the X-Payment transaction id against the Hiro indexer
4. Returns 403 when verification fails
5. Hands the verification result to the endpoint via request.state

Unpaid and rejected requests never reach the endpoint, so no upstream data
is fetched for them.
"""
import logging
from typing import Callable, Optional

from fastapi import HTTPException, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import GateConfig, get_gate_config
from app.services.hiro_api import HiroClient
from app.x402.audit import (
    generate_request_id,
    log_payment_failed,
    log_payment_required_sent,
    log_payment_verified,
)
from app.x402.gate import (
    X_PAYMENT_HEADER,
    PaymentVerificationResult,
    build_challenge,
    create_402_response,
    create_403_response,
    verify_payment,
)
from app.x402.pricing import get_priced_resource, get_price_quote

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    # Check for forwarded headers first
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP in the chain
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    # Fall back to direct connection
    if request.client:
        return request.client.host

    return "unknown"


def get_verified_payment(request: Request) -> PaymentVerificationResult:
    """
    FastAPI dependency returning the payment verified by X402Middleware.

    Raises:
        HTTPException: 402 if the request did not pass through the gate
    """
    payment = getattr(request.state, "payment", None)
    if payment is None or not payment.valid:
        raise HTTPException(status_code=402, detail="Payment required")
    return payment


def get_request_gate_config(request: Request) -> GateConfig:
    """
    FastAPI dependency returning the GateConfig the app was built with.

    Falls back to the settings-derived config for apps that never stored one.
    """
    config = getattr(request.app.state, "gate_config", None)
    return config or get_gate_config()


class X402Middleware(BaseHTTPMiddleware):
    """
    x402 payment gate middleware for FastAPI.

    Holds no per-request state: the configuration is immutable and the
    ledger client is a stateless accessor, so concurrent requests never
    interact.
    """

    def __init__(
        self,
        app,
        config: Optional[GateConfig] = None,
        ledger_client: Optional[HiroClient] = None,
    ):
        super().__init__(app)
        self.config = config or get_gate_config()
        self._ledger_client = ledger_client

    @property
    def ledger_client(self) -> HiroClient:
        """Lazy initialization of the Hiro client."""
        if self._ledger_client is None:
            self._ledger_client = HiroClient()
        return self._ledger_client

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response]
    ) -> Response:
        """
        Process the request through x402 payment verification.

        Flow:
        1. Skip free endpoints
        2. If no X-Payment header, return 402 with a payment challenge
        3. If X-Payment header present, verify it on-chain
        4. If invalid, return 403 with the failure reason
        5. If valid, expose the verification and process the request
        """
        resource = get_priced_resource(request.method, request.url.path)
        if resource is None:
            return await call_next(request)

        client_ip = get_client_ip(request)
        request_id = generate_request_id()
        logger.info(f"x402: Processing priced request from {client_ip}: {request.method} {resource.path}")

        quote = get_price_quote(resource, self.config)
        payment_header = request.headers.get(X_PAYMENT_HEADER)

        if not payment_header:
            challenge = build_challenge(
                request=request,
                resource=resource.path,
                price_stx=quote["price_stx"],
                config=self.config,
                price_sbtc=quote["price_sbtc"],
            )
            logger.info(
                f"x402: No X-Payment header, returning 402 for "
                f"{challenge.maxAmountRequired} {challenge.tokenType}"
            )
            log_payment_required_sent(
                client_ip=client_ip,
                resource=resource.path,
                token_type=challenge.tokenType,
                amount=challenge.maxAmountRequired,
                nonce=challenge.nonce,
                expires_at=challenge.expiresAt,
                request_id=request_id,
            )
            return create_402_response(challenge)

        verification = await verify_payment(payment_header, self.config, self.ledger_client)

        if not verification.valid:
            log_payment_failed(
                client_ip=client_ip,
                resource=resource.path,
                txid=verification.txid,
                failure=verification.failure.value,
                reason=verification.reason,
                request_id=request_id,
            )
            return create_403_response(verification)

        log_payment_verified(
            client_ip=client_ip,
            resource=resource.path,
            txid=verification.txid,
            payer=verification.payer,
            request_id=request_id,
        )
        request.state.payment = verification
        return await call_next(request)
