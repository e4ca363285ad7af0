# app/x402/audit.py
"""
Audit trail for x402 payment decisions.

Every gate decision is emitted as one JSON line on the "app.x402.audit"
logger, so operators can route it to a file or collector through standard
logging configuration. Nothing is stored by the service itself.

Events logged:
- 402 returned (resource, token, amount, nonce, expiry)
- Payment verified (txid, payer)
- Payment failed (txid, failure kind, reason)
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Types of audit events that can be logged."""
    PAYMENT_REQUIRED_SENT = "payment_required_sent"
    PAYMENT_VERIFIED = "payment_verified"
    PAYMENT_FAILED = "payment_failed"


def generate_request_id() -> str:
    """Generate a unique request ID for tracking."""
    return str(uuid.uuid4())[:8]


def create_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    client_ip: Optional[str] = None,
    wallet_address: Optional[str] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Create an audit event dictionary.

    Args:
        event_type: Type of event to log
        data: Event-specific data
        client_ip: Client IP address (if available)
        wallet_address: Payer's Stacks address (if known)
        request_id: Unique request identifier (if available)

    Returns:
        A structured event ready to be serialized
    """
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type.value,
        "request_id": request_id or generate_request_id(),
        "client_ip": client_ip,
        "wallet_address": wallet_address,
        "data": data
    }


def log_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    client_ip: Optional[str] = None,
    wallet_address: Optional[str] = None,
    request_id: Optional[str] = None
) -> Optional[str]:
    """
    Emit an audit event as a JSON line.

    Returns:
        The request_id used for this event, or None when auditing is disabled
    """
    if not settings.AUDIT_LOG_ENABLED:
        return None

    event = create_audit_event(
        event_type=event_type,
        data=data,
        client_ip=client_ip,
        wallet_address=wallet_address,
        request_id=request_id
    )
    logger.info(json.dumps(event, default=str))
    return event["request_id"]


def log_payment_required_sent(
    client_ip: str,
    resource: str,
    token_type: str,
    amount: str,
    nonce: str,
    expires_at: str,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a 402 Payment Required response event."""
    return log_audit_event(
        event_type=AuditEventType.PAYMENT_REQUIRED_SENT,
        data={
            "resource": resource,
            "token_type": token_type,
            "amount": amount,
            "nonce": nonce,
            "expires_at": expires_at,
        },
        client_ip=client_ip,
        request_id=request_id
    )


def log_payment_verified(
    client_ip: str,
    resource: str,
    txid: str,
    payer: Optional[str],
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a successful payment verification."""
    return log_audit_event(
        event_type=AuditEventType.PAYMENT_VERIFIED,
        data={
            "resource": resource,
            "txid": txid,
        },
        client_ip=client_ip,
        wallet_address=payer,
        request_id=request_id
    )


def log_payment_failed(
    client_ip: str,
    resource: str,
    txid: str,
    failure: str,
    reason: str,
    request_id: Optional[str] = None
) -> Optional[str]:
    """Log a rejected payment proof."""
    return log_audit_event(
        event_type=AuditEventType.PAYMENT_FAILED,
        data={
            "resource": resource,
            "txid": txid,
            "failure": failure,
            "reason": reason,
        },
        client_ip=client_ip,
        request_id=request_id
    )
