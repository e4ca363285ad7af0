"""
Unit tests for x402 middleware.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from app.core.config import Settings, build_gate_config
from app.services.hiro_api import HiroClient, TransactionFound, TransactionNotFound, TransportError
from app.x402.gate import PaymentVerificationResult
from app.x402.middleware import X402Middleware, get_client_ip, get_request_gate_config, get_verified_payment

CONFIG = build_gate_config(Settings())
PAYER = "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7"
VALID_TX = "0x" + "11" * 32


def make_ledger(lookup=None):
    ledger = MagicMock()
    ledger.get_transaction = AsyncMock(return_value=lookup or TransactionFound(
        txid=VALID_TX,
        status="success",
        tx_type="contract_call",
        contract_id=CONFIG.contract.contract_id,
        sender=PAYER,
    ))
    return ledger


# Create a test FastAPI app with the x402 middleware
def create_test_app(ledger) -> FastAPI:
    app = FastAPI()
    handler_calls = []

    @app.get("/peg-health")
    async def peg_health(payment: PaymentVerificationResult = Depends(get_verified_payment)):
        handler_calls.append(payment)
        return {"paymentVerified": True, "caller": payment.payer}

    @app.post("/simulate")
    async def simulate(payment: PaymentVerificationResult = Depends(get_verified_payment)):
        handler_calls.append(payment)
        return {"paymentVerified": True}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/unguarded")
    async def unguarded(payment: PaymentVerificationResult = Depends(get_verified_payment)):
        return {"payer": payment.payer}

    app.add_middleware(X402Middleware, config=CONFIG, ledger_client=ledger)
    app.state.handler_calls = handler_calls
    return app


class TestGetClientIP:
    """Test client IP extraction."""

    def test_forwarded_for_header(self):
        request = MagicMock(spec=Request)
        request.headers = {"X-Forwarded-For": "203.0.113.50, 70.41.3.18"}
        request.client = None

        assert get_client_ip(request) == "203.0.113.50"

    def test_real_ip_header(self):
        request = MagicMock(spec=Request)
        request.headers = {"X-Real-IP": "203.0.113.50"}
        request.client = None

        assert get_client_ip(request) == "203.0.113.50"

    def test_direct_connection(self):
        request = MagicMock(spec=Request)
        request.headers = {}
        request.client = MagicMock()
        request.client.host = "192.168.1.100"

        assert get_client_ip(request) == "192.168.1.100"

    def test_no_client_info(self):
        request = MagicMock(spec=Request)
        request.headers = {}
        request.client = None

        assert get_client_ip(request) == "unknown"


class TestMiddlewareDispatch:
    """Test the challenge / reject / release branches."""

    def test_free_endpoint_passes_through(self):
        ledger = make_ledger()
        client = TestClient(create_test_app(ledger))

        response = client.get("/health")

        assert response.status_code == 200
        ledger.get_transaction.assert_not_called()

    def test_missing_header_returns_402(self):
        """No X-Payment header: 402 and the handler never runs."""
        ledger = make_ledger()
        app = create_test_app(ledger)
        client = TestClient(app)

        response = client.get("/peg-health")

        assert response.status_code == 402
        body = response.json()
        assert body["code"] == "PAYMENT_REQUIRED"
        assert body["resource"] == "/peg-health"
        assert body["payment"]["price"] == 2000
        assert app.state.handler_calls == []
        ledger.get_transaction.assert_not_called()

    def test_premium_challenge_in_sbtc(self):
        client = TestClient(create_test_app(make_ledger()))

        response = client.post("/simulate", headers={"X-PAYMENT-TOKEN-TYPE": "sbtc"})

        assert response.status_code == 402
        assert response.json()["tokenType"] == "sBTC"
        assert response.json()["maxAmountRequired"] == "5"

    def test_valid_payment_releases_resource(self):
        ledger = make_ledger()
        app = create_test_app(ledger)
        client = TestClient(app)

        response = client.get("/peg-health", headers={"X-Payment": VALID_TX})

        assert response.status_code == 200
        assert response.json() == {"paymentVerified": True, "caller": PAYER}
        assert len(app.state.handler_calls) == 1
        ledger.get_transaction.assert_awaited_once_with(VALID_TX)

    def test_not_found_returns_403(self):
        ledger = make_ledger(TransactionNotFound(txid=VALID_TX, status_code=404))
        app = create_test_app(ledger)
        client = TestClient(app)

        response = client.get("/peg-health", headers={"X-Payment": VALID_TX})

        assert response.status_code == 403
        assert response.json() == {"error": "Payment verification failed", "details": "Transaction not found"}
        assert app.state.handler_calls == []

    def test_transport_error_returns_403(self):
        ledger = make_ledger(TransportError(txid=VALID_TX, message="timed out"))
        client = TestClient(create_test_app(ledger))

        response = client.get("/peg-health", headers={"X-Payment": VALID_TX})

        assert response.status_code == 403
        assert "timed out" in response.json()["details"]

    def test_same_proof_reused(self):
        """A verified txid keeps working for further requests."""
        ledger = make_ledger()
        client = TestClient(create_test_app(ledger))

        first = client.get("/peg-health", headers={"X-Payment": VALID_TX})
        second = client.post("/simulate", headers={"X-Payment": VALID_TX})

        assert first.status_code == 200
        assert second.status_code == 200
        assert ledger.get_transaction.await_count == 2

    def test_dependency_without_gate(self):
        """get_verified_payment refuses requests the gate never saw."""
        client = TestClient(create_test_app(make_ledger()))

        response = client.get("/unguarded")

        assert response.status_code == 402


class TestLedgerClientInitialization:
    """Test lazy ledger client creation."""

    def test_lazy_hiro_client(self):
        middleware = X402Middleware(MagicMock(), config=CONFIG)

        assert isinstance(middleware.ledger_client, HiroClient)
        assert middleware.ledger_client is middleware.ledger_client

    @patch("app.x402.middleware.get_gate_config")
    def test_default_config(self, mock_get_config):
        mock_get_config.return_value = CONFIG
        middleware = X402Middleware(MagicMock())

        assert middleware.config is CONFIG


class TestGateConfigDependency:
    """Test config lookup for handlers."""

    def test_reads_config_stored_on_app(self):
        testnet = build_gate_config(Settings(STACKS_NETWORK="testnet"))
        app = FastAPI()
        app.state.gate_config = testnet

        @app.get("/network")
        async def network(config=Depends(get_request_gate_config)):
            return {"network": config.network}

        assert TestClient(app).get("/network").json() == {"network": "testnet"}

    @patch("app.x402.middleware.get_gate_config")
    def test_falls_back_to_settings(self, mock_get_config):
        mock_get_config.return_value = CONFIG
        app = FastAPI()

        @app.get("/network")
        async def network(config=Depends(get_request_gate_config)):
            return {"network": config.network}

        assert TestClient(app).get("/network").json() == {"network": CONFIG.network}
