# app/services/hiro_api.py
"""
Read-only client for the Hiro Stacks indexing API.

Transaction lookups return one of three tagged results so callers can
branch on them explicitly:

- TransactionFound: the indexer knows the transaction
- TransactionNotFound: the indexer answered with a non-2xx status
- TransportError: network failure or an unparseable response
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from urllib.parse import urljoin

import requests
from requests.exceptions import RequestException

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionFound:
    txid: str
    status: str
    tx_type: str
    contract_id: Optional[str]
    sender: Optional[str]


@dataclass(frozen=True)
class TransactionNotFound:
    txid: str
    status_code: int


@dataclass(frozen=True)
class TransportError:
    txid: str
    message: str


TransactionLookup = Union[TransactionFound, TransactionNotFound, TransportError]


def normalize_txid(txid: str) -> str:
    """Ensure a transaction id carries the 0x prefix the indexer expects."""
    txid = txid.strip()
    return txid if txid.startswith("0x") else f"0x{txid}"


def parse_transaction(txid: str, data: Any) -> TransactionLookup:
    """
    Convert a raw /extended/v1/tx payload into a tagged lookup result.

    Only the fields the payment gate needs are kept. A payload without a
    tx_status is treated as malformed.
    """
    if not isinstance(data, dict) or not isinstance(data.get("tx_status"), str):
        return TransportError(txid=txid, message="Malformed transaction response from indexer")

    contract_call = data.get("contract_call")
    contract_id = contract_call.get("contract_id") if isinstance(contract_call, dict) else None

    return TransactionFound(
        txid=txid,
        status=data["tx_status"],
        tx_type=str(data.get("tx_type", "")),
        contract_id=contract_id,
        sender=data.get("sender_address"),
    )


class HiroClient:
    """
    Thin accessor for the Hiro API.

    Blocking requests calls are off-loaded to a worker thread so one slow
    lookup only suspends the request that issued it.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = str(base_url or settings.HIRO_API_URL)
        self.timeout = timeout if timeout is not None else settings.UPSTREAM_TIMEOUT_SECONDS

    def _url(self, path: str) -> str:
        return urljoin(self.base_url.rstrip("/") + "/", path)

    def _fetch_transaction(self, txid: str) -> TransactionLookup:
        api_url = self._url(f"extended/v1/tx/{txid}")
        try:
            response = requests.get(api_url, timeout=self.timeout)
        except RequestException as e:
            logger.error(f"Error fetching transaction {txid} from Hiro API ({api_url}): {e}")
            return TransportError(txid=txid, message=str(e))

        if not response.ok:
            logger.info(f"Hiro API returned {response.status_code} for transaction {txid}")
            return TransactionNotFound(txid=txid, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from Hiro API for transaction {txid}: {e}")
            return TransportError(txid=txid, message=f"Invalid JSON response: {e}")

        return parse_transaction(txid, data)

    async def get_transaction(self, txid: str) -> TransactionLookup:
        """Look up a transaction by id (0x prefix added when missing)."""
        return await asyncio.to_thread(self._fetch_transaction, normalize_txid(txid))

    def _fetch_token_metadata(self, contract_id: str) -> Optional[Dict[str, Any]]:
        api_url = self._url(f"extended/v1/tokens/ft/{contract_id}")
        try:
            response = requests.get(api_url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except RequestException as e:
            logger.warning(f"Error fetching token metadata for {contract_id} ({api_url}): {e}")
            return None
        except ValueError as e:
            logger.warning(f"Invalid token metadata response for {contract_id}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Unexpected token metadata structure from Hiro API: {type(data)}")
            return None
        return data

    async def get_token_metadata(self, contract_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch fungible-token metadata (total_supply, holders_count).

        Returns None when the lookup fails for any reason.
        """
        return await asyncio.to_thread(self._fetch_token_metadata, contract_id)
