"""
Unit tests for the Hiro ledger client.
"""
import asyncio
import pytest
from unittest.mock import patch, MagicMock
from requests.exceptions import ConnectionError as RequestsConnectionError, Timeout

from app.services.hiro_api import (
    HiroClient,
    TransactionFound,
    TransactionNotFound,
    TransportError,
    normalize_txid,
    parse_transaction,
)

TXID = "0x" + "cd" * 32


def make_response(status_code=200, payload=None, json_error=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if json_error:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


class TestNormalizeTxid:
    """Test txid normalization."""

    def test_adds_prefix(self):
        assert normalize_txid("abc123") == "0xabc123"

    def test_keeps_prefix(self):
        assert normalize_txid("0xabc123") == "0xabc123"

    def test_strips_whitespace(self):
        assert normalize_txid("  abc123 ") == "0xabc123"


class TestParseTransaction:
    """Test conversion of raw indexer payloads."""

    def test_contract_call(self):
        """Contract call fields are extracted."""
        data = {
            "tx_id": TXID,
            "tx_status": "success",
            "tx_type": "contract_call",
            "sender_address": "SP123",
            "contract_call": {"contract_id": "SP456.simple-oracle", "function_name": "call-with-stx"},
        }
        result = parse_transaction(TXID, data)

        assert result == TransactionFound(
            txid=TXID,
            status="success",
            tx_type="contract_call",
            contract_id="SP456.simple-oracle",
            sender="SP123",
        )

    def test_token_transfer_has_no_contract(self):
        """Non contract-call transactions have no contract id."""
        data = {"tx_status": "success", "tx_type": "token_transfer", "sender_address": "SP123"}
        result = parse_transaction(TXID, data)

        assert isinstance(result, TransactionFound)
        assert result.contract_id is None

    @pytest.mark.parametrize("data", [None, [], "oops", {"tx_type": "contract_call"}, {"tx_status": 1}])
    def test_malformed_payload(self, data):
        """Payloads without a string tx_status are transport errors."""
        result = parse_transaction(TXID, data)
        assert isinstance(result, TransportError)
        assert "Malformed" in result.message


class TestGetTransaction:
    """Test transaction lookups against a mocked Hiro API."""

    @patch("app.services.hiro_api.requests.get")
    def test_found(self, mock_get):
        """200 response yields TransactionFound."""
        mock_get.return_value = make_response(payload={
            "tx_status": "success",
            "tx_type": "contract_call",
            "sender_address": "SP123",
            "contract_call": {"contract_id": "SP456.simple-oracle"},
        })
        client = HiroClient(base_url="https://api.example.com", timeout=3)

        result = asyncio.run(client.get_transaction(TXID))

        assert isinstance(result, TransactionFound)
        assert result.sender == "SP123"
        mock_get.assert_called_once_with(f"https://api.example.com/extended/v1/tx/{TXID}", timeout=3)

    @patch("app.services.hiro_api.requests.get")
    def test_prefix_added_to_url(self, mock_get):
        """Bare txids get the 0x prefix in the request URL."""
        mock_get.return_value = make_response(status_code=404)
        client = HiroClient(base_url="https://api.example.com/", timeout=3)

        asyncio.run(client.get_transaction("cd" * 32))

        called_url = mock_get.call_args[0][0]
        assert called_url == f"https://api.example.com/extended/v1/tx/{TXID}"

    @patch("app.services.hiro_api.requests.get")
    def test_not_found(self, mock_get):
        """404 response yields TransactionNotFound."""
        mock_get.return_value = make_response(status_code=404)
        client = HiroClient(base_url="https://api.example.com")

        result = asyncio.run(client.get_transaction(TXID))

        assert result == TransactionNotFound(txid=TXID, status_code=404)

    @patch("app.services.hiro_api.requests.get")
    def test_server_error_is_not_found(self, mock_get):
        """Any non-2xx answer is reported as not found."""
        mock_get.return_value = make_response(status_code=503)
        client = HiroClient(base_url="https://api.example.com")

        result = asyncio.run(client.get_transaction(TXID))

        assert isinstance(result, TransactionNotFound)
        assert result.status_code == 503

    @pytest.mark.parametrize("error", [RequestsConnectionError("refused"), Timeout("timed out")])
    @patch("app.services.hiro_api.requests.get")
    def test_network_error(self, mock_get, error):
        """Network failures yield TransportError."""
        mock_get.side_effect = error
        client = HiroClient(base_url="https://api.example.com")

        result = asyncio.run(client.get_transaction(TXID))

        assert isinstance(result, TransportError)
        assert str(error) in result.message

    @patch("app.services.hiro_api.requests.get")
    def test_invalid_json(self, mock_get):
        """Undecodable bodies yield TransportError."""
        mock_get.return_value = make_response(json_error=ValueError("Expecting value"))
        client = HiroClient(base_url="https://api.example.com")

        result = asyncio.run(client.get_transaction(TXID))

        assert isinstance(result, TransportError)
        assert "Invalid JSON" in result.message


class TestGetTokenMetadata:
    """Test fungible token metadata lookups."""

    @patch("app.services.hiro_api.requests.get")
    def test_success(self, mock_get):
        mock_get.return_value = make_response(payload={"total_supply": "400000000", "holders_count": 1200})
        client = HiroClient(base_url="https://api.example.com")

        result = asyncio.run(client.get_token_metadata("SM3.sbtc-token"))

        assert result == {"total_supply": "400000000", "holders_count": 1200}
        assert mock_get.call_args[0][0] == "https://api.example.com/extended/v1/tokens/ft/SM3.sbtc-token"

    @patch("app.services.hiro_api.requests.get")
    def test_failure_returns_none(self, mock_get):
        mock_get.side_effect = RequestsConnectionError("refused")
        client = HiroClient(base_url="https://api.example.com")

        assert asyncio.run(client.get_token_metadata("SM3.sbtc-token")) is None

    @patch("app.services.hiro_api.requests.get")
    def test_unexpected_structure_returns_none(self, mock_get):
        mock_get.return_value = make_response(payload=["not", "a", "dict"])
        client = HiroClient(base_url="https://api.example.com")

        assert asyncio.run(client.get_token_metadata("SM3.sbtc-token")) is None
