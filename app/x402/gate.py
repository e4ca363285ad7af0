# app/x402/gate.py
"""
x402 payment gate for Stacks payments.

This module holds the stateless decision logic behind every priced endpoint:
1. Select the payment token (STX or sBTC) for a request
2. Build the 402 challenge describing how to pay
3. Verify a claimed payment transaction against the Hiro indexer

Known gaps, kept on purpose:
- The challenge nonce is never bound to the verified transaction, and a
  verified txid is not consumed, so one payment can unlock any number of
  requests.
- The paid amount is not compared against the price.
- expiresAt is informational; verification does not enforce it.
"""
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from fastapi import Request
from starlette.responses import JSONResponse

from app.api.models.payment import (
    ContractPayment,
    PaymentChallenge,
    PaymentOptions,
    PaymentRejection,
    SbtcOption,
    SbtcTokenContract,
    StxOption,
)
from app.core.config import GateConfig
from app.services.hiro_api import (
    HiroClient,
    TransactionFound,
    TransactionNotFound,
    TransportError,
    normalize_txid,
)

logger = logging.getLogger(__name__)

# x402 protocol constants
X_PAYMENT_HEADER = "X-Payment"
X_PAYMENT_TOKEN_TYPE_HEADER = "X-PAYMENT-TOKEN-TYPE"
TOKEN_TYPE_QUERY_PARAM = "tokenType"
CHALLENGE_TTL = timedelta(minutes=10)

SUCCESS_STATUS = "success"
CONTRACT_CALL_TYPE = "contract_call"


class PriceToken(str, Enum):
    """Currency a payment is denominated in."""
    STX = "STX"
    SBTC = "sBTC"


class VerificationFailure(str, Enum):
    TRANSACTION_NOT_FOUND = "transaction_not_found"
    TRANSACTION_NOT_SUCCESSFUL = "transaction_not_successful"
    WRONG_OPERATION_KIND = "wrong_operation_kind"
    WRONG_CONTRACT_TARGET = "wrong_contract_target"
    TRANSPORT_FAILURE = "transport_failure"


@dataclass(frozen=True)
class PaymentVerificationResult:
    valid: bool
    txid: str
    failure: Optional[VerificationFailure] = None
    reason: Optional[str] = None
    payer: Optional[str] = None

    @classmethod
    def accepted(cls, txid: str, payer: Optional[str]) -> "PaymentVerificationResult":
        return cls(valid=True, txid=txid, payer=payer)

    @classmethod
    def rejected(
        cls, txid: str, failure: VerificationFailure, reason: str
    ) -> "PaymentVerificationResult":
        return cls(valid=False, txid=txid, failure=failure, reason=reason)


def resolve_token_type(header_value: Optional[str], query_value: Optional[str]) -> PriceToken:
    """
    Resolve the payment token from a header hint and a query hint.

    The header wins; an empty header falls through to the query. Only a
    value case-insensitively equal to "sBTC" selects sBTC. Anything else,
    padded values included, means STX.
    """
    hint = header_value or query_value or PriceToken.STX.value
    if hint.upper() == PriceToken.SBTC.value.upper():
        return PriceToken.SBTC
    return PriceToken.STX


def select_token_type(request: Request) -> PriceToken:
    """Token type requested via X-PAYMENT-TOKEN-TYPE or ?tokenType=."""
    return resolve_token_type(
        request.headers.get(X_PAYMENT_TOKEN_TYPE_HEADER),
        request.query_params.get(TOKEN_TYPE_QUERY_PARAM),
    )


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_challenge(
    request: Request,
    resource: str,
    price_stx: int,
    config: GateConfig,
    price_sbtc: Optional[int] = None,
    now: Optional[datetime] = None,
) -> PaymentChallenge:
    """
    Create the payment challenge for an unpaid request.

    Args:
        request: The incoming request (used for token-type selection)
        resource: Path of the priced resource
        price_stx: Price in micro-STX
        config: Payment configuration
        price_sbtc: Price in sats, if the resource accepts sBTC
        now: Creation time, defaults to the current UTC time

    Returns:
        PaymentChallenge denominated in sBTC when sBTC was requested and an
        sBTC price exists, otherwise in STX
    """
    created_at = now or datetime.now(timezone.utc)
    token_type = select_token_type(request)
    sbtc_contract = SbtcTokenContract(token=config.sbtc.token, deposit=config.sbtc.deposit)

    common = {
        "resource": resource,
        "nonce": str(uuid.uuid4()),
        "expiresAt": format_timestamp(created_at + CHALLENGE_TTL),
        "network": config.network,
        "payTo": config.contract.recipient,
    }

    if token_type is PriceToken.SBTC and price_sbtc:
        return PaymentChallenge(
            **common,
            maxAmountRequired=str(price_sbtc),
            tokenType=PriceToken.SBTC.value,
            tokenContract=sbtc_contract,
            instructions=[
                "1. Sign an sBTC transfer transaction",
                "2. Include the signed transaction hex in X-Payment header",
                "3. Transaction will be broadcast and verified",
            ],
        )

    return PaymentChallenge(
        **common,
        maxAmountRequired=str(price_stx),
        tokenType=PriceToken.STX.value,
        payment=ContractPayment(
            contract=config.contract.contract_id,
            function=config.contract.function,
            price=price_stx,
            recipient=config.contract.recipient,
        ),
        paymentOptions=PaymentOptions(
            stx=StxOption(price=price_stx),
            sbtc=SbtcOption(
                price=price_sbtc or math.ceil(price_stx / 1000),
                tokenContract=sbtc_contract,
            ),
        ),
        instructions=[
            "1. Call the contract with STX payment (or use ?tokenType=sBTC for sBTC)",
            "2. Wait for transaction confirmation",
            "3. Retry request with X-Payment header containing txid",
        ],
    )


def create_402_response(challenge: PaymentChallenge) -> JSONResponse:
    """Wrap a challenge in an HTTP 402 Payment Required response."""
    return JSONResponse(
        status_code=402,
        content=challenge.model_dump(exclude_none=True),
    )


def create_403_response(result: PaymentVerificationResult) -> JSONResponse:
    """HTTP 403 for a payment proof that did not verify."""
    rejection = PaymentRejection(details=result.reason or "Unknown reason")
    return JSONResponse(status_code=403, content=rejection.model_dump())


def check_transaction(
    tx: TransactionFound, config: GateConfig
) -> PaymentVerificationResult:
    """Apply the status, operation-kind and target checks to a found transaction."""
    if tx.status != SUCCESS_STATUS:
        return PaymentVerificationResult.rejected(
            tx.txid,
            VerificationFailure.TRANSACTION_NOT_SUCCESSFUL,
            f"Transaction status: {tx.status}",
        )

    if tx.tx_type != CONTRACT_CALL_TYPE:
        return PaymentVerificationResult.rejected(
            tx.txid, VerificationFailure.WRONG_OPERATION_KIND, "Not a contract call"
        )

    if tx.contract_id != config.contract.contract_id:
        return PaymentVerificationResult.rejected(
            tx.txid, VerificationFailure.WRONG_CONTRACT_TARGET, "Wrong contract"
        )

    return PaymentVerificationResult.accepted(tx.txid, tx.sender)


async def verify_payment(
    proof_token: str, config: GateConfig, ledger: HiroClient
) -> PaymentVerificationResult:
    """
    Verify that a transaction id is a successful call to the payment contract.

    Never raises: ledger transport errors and any unexpected exception are
    folded into a TRANSPORT_FAILURE result.
    """
    txid = normalize_txid(proof_token)

    try:
        lookup = await ledger.get_transaction(txid)

        if isinstance(lookup, TransactionNotFound):
            result = PaymentVerificationResult.rejected(
                txid, VerificationFailure.TRANSACTION_NOT_FOUND, "Transaction not found"
            )
        elif isinstance(lookup, TransportError):
            result = PaymentVerificationResult.rejected(
                txid, VerificationFailure.TRANSPORT_FAILURE, f"Verification failed: {lookup.message}"
            )
        elif isinstance(lookup, TransactionFound):
            result = check_transaction(lookup, config)
        else:
            raise TypeError(f"Unexpected ledger lookup result: {type(lookup).__name__}")

    except Exception as e:
        logger.error(f"x402: Payment verification error for {txid}: {e}")
        result = PaymentVerificationResult.rejected(
            txid, VerificationFailure.TRANSPORT_FAILURE, f"Verification failed: {e}"
        )

    if result.valid:
        logger.info(f"x402: Payment {txid} verified for payer {result.payer}")
    else:
        logger.warning(f"x402: Payment {txid} rejected ({result.failure.value}): {result.reason}")
    return result
