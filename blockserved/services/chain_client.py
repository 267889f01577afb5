# blockserved/services/chain_client.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import base58
import requests

from blockserved.core.config import Settings
from blockserved.core.errors import ChainError, ChainUnavailable

logger = logging.getLogger(__name__)

RETRY_STATUS = {429, 500, 502, 503, 504}
ZERO_ADDRESS_HEX = "41" + "00" * 20


class ChainClient(Protocol):
    def call_contract(self, method: str, args: Sequence[Any]) -> List[str]:
        ...

    def send_transaction(self, method: str, args: Sequence[Any], options: Optional[Dict[str, Any]] = None) -> str:
        ...


# ─────────────────────────────────────────────
# ABI WORDS
# ─────────────────────────────────────────────

def address_to_hex(address: str) -> str:
    """Base58 TRON address -> 21-byte hex with the 0x41 prefix."""
    try:
        return base58.b58decode_check(address.strip()).hex()
    except ValueError as e:
        raise ValueError(f"Not a TRON address: {address!r}") from e


def hex_to_address(hex_addr: str) -> Optional[str]:
    h = hex_addr.lower().removeprefix("0x")
    if len(h) == 40:
        h = "41" + h
    if h == ZERO_ADDRESS_HEX:
        return None
    return base58.b58encode_check(bytes.fromhex(h)).decode()


def encode_args(args: Sequence[Any]) -> str:
    """
    Static ABI encoding for the argument kinds the notice contract takes:
    unsigned integers (or numeric strings) and TRON addresses.
    """
    words = []
    for a in args:
        if isinstance(a, int) or (isinstance(a, str) and a.strip().isdigit()):
            words.append(format(int(a), "064x"))
        elif isinstance(a, str):
            words.append(address_to_hex(a)[2:].rjust(64, "0"))
        else:
            raise ValueError(f"Unsupported contract argument: {a!r}")
    return "".join(words)


def split_words(result_hex: str) -> List[str]:
    return [result_hex[i:i + 64] for i in range(0, len(result_hex), 64)]


def word_to_int(word: str) -> int:
    return int(word, 16)


def word_to_address(word: str) -> Optional[str]:
    return hex_to_address(word[-40:])


@dataclass
class AlertOnChain:
    alert_token_id: str
    recipient: Optional[str]
    sender: Optional[str]
    document_token_id: Optional[str]


# ─────────────────────────────────────────────
# TRONGRID CLIENT
# ─────────────────────────────────────────────

class TronGridClient:
    """
    Read/write access to the notice contract through the TronGrid HTTP API.

    Every request has a timeout. 429 and 5xx responses (and connection
    errors) are retried with exponential backoff up to `max_retries`
    times, after which ChainUnavailable is raised.
    """

    # Contract view signatures used by the repair tooling
    OWNER_OF = "ownerOf(uint256)"
    ALERT_NOTICES = "alertNotices(uint256)"

    def __init__(
        self,
        *,
        api_url: str,
        contract_address: str,
        api_key: str = "",
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        signer: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not contract_address:
            raise ChainUnavailable("No contract address configured.")
        self.api_url = api_url.rstrip("/")
        self.contract_address = contract_address
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.signer = signer
        self.session = session or requests.Session()
        self._sleep = sleep
        if api_key:
            self.session.headers.update({"TRON-PRO-API-KEY": api_key})

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "TronGridClient":
        return cls(
            api_url=settings.tron_api_url,
            contract_address=settings.contract_address,
            api_key=settings.tron_api_key,
            timeout=settings.chain_timeout_seconds,
            max_retries=settings.chain_max_retries,
            backoff_seconds=settings.chain_backoff_seconds,
            **kwargs,
        )

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        delay = self.backoff_seconds
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                resp = self.session.post(url, json=body, timeout=self.timeout)
            except requests.RequestException as e:
                reason = str(e)
            else:
                if resp.status_code not in RETRY_STATUS:
                    if resp.status_code >= 400:
                        raise ChainError(f"{path} returned HTTP {resp.status_code}")
                    try:
                        return resp.json()
                    except ValueError as e:
                        raise ChainError(f"{path} returned invalid JSON") from e
                reason = f"HTTP {resp.status_code}"

            if attempt == attempts:
                raise ChainUnavailable(f"{path} failed after {attempts} attempts ({reason})")
            logger.warning("[chain] %s %s; retry %s/%s in %.1fs", path, reason, attempt, self.max_retries, delay)
            self._sleep(delay)
            delay = min(delay * 2, 30.0)

        raise ChainUnavailable(path)

    def call_contract(self, method: str, args: Sequence[Any]) -> List[str]:
        """Constant (view) call. Returns the result split into 32-byte hex words."""
        data = self._post("/wallet/triggerconstantcontract", {
            "owner_address": self.contract_address,
            "contract_address": self.contract_address,
            "function_selector": method,
            "parameter": encode_args(args),
            "visible": True,
        })
        result = data.get("result") or {}
        if result.get("result") is False or "constant_result" not in data:
            raise ChainError(f"{method} reverted: {result.get('message') or data.get('Error') or 'no result'}")
        out = data["constant_result"][0] if data["constant_result"] else ""
        return split_words(out)

    def send_transaction(self, method: str, args: Sequence[Any], options: Optional[Dict[str, Any]] = None) -> str:
        """
        Build, sign and broadcast a contract call. Signing is delegated to the
        injected signer; without one, writes are unavailable.
        """
        if self.signer is None:
            raise ChainUnavailable("No transaction signer configured.")
        options = options or {}
        built = self._post("/wallet/triggersmartcontract", {
            "owner_address": options.get("from") or self.contract_address,
            "contract_address": self.contract_address,
            "function_selector": method,
            "parameter": encode_args(args),
            "fee_limit": int(options.get("fee_limit", 150_000_000)),
            "call_value": int(options.get("call_value", 0)),
            "visible": True,
        })
        tx = built.get("transaction")
        if not tx:
            raise ChainError(f"{method} could not be built: {built.get('result')}")
        sent = self._post("/wallet/broadcasttransaction", self.signer(tx))
        if not sent.get("result"):
            raise ChainError(f"{method} broadcast rejected: {sent.get('code') or sent.get('message')}")
        txid = sent.get("txid") or tx.get("txID")
        logger.info("[chain] sent method=%s txid=%s", method, txid)
        return txid

    # ─────────────────────────────────────────────
    # CONVENIENCE READS
    # ─────────────────────────────────────────────

    def token_owner(self, token_id: Any) -> Optional[str]:
        words = self.call_contract(self.OWNER_OF, [token_id])
        return word_to_address(words[0]) if words else None

    def alert_notice(self, alert_token_id: Any) -> Optional[AlertOnChain]:
        words = self.call_contract(self.ALERT_NOTICES, [alert_token_id])
        if len(words) < 3:
            return None
        recipient = word_to_address(words[0])
        if recipient is None:
            return None
        doc = word_to_int(words[2])
        return AlertOnChain(
            alert_token_id=str(alert_token_id),
            recipient=recipient,
            sender=word_to_address(words[1]),
            document_token_id=str(doc) if doc else None,
        )

    def document_for_alert(self, alert_token_id: Any) -> Optional[str]:
        notice = self.alert_notice(alert_token_id)
        return notice.document_token_id if notice else None

    def alert_recipient(self, alert_token_id: Any) -> Optional[str]:
        notice = self.alert_notice(alert_token_id)
        return notice.recipient if notice else None

    def transaction_succeeded(self, tx_id: str) -> bool:
        """
        True when the transaction is in a block and did not fail. An unknown
        or still-pending id answers an empty object.
        """
        info = self._post("/wallet/gettransactioninfobyid", {"value": tx_id})
        if not info or not info.get("blockNumber"):
            return False
        if info.get("result") == "FAILED":
            return False
        receipt = info.get("receipt") or {}
        return receipt.get("result", "SUCCESS") == "SUCCESS"
