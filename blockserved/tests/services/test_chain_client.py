import base58
import pytest
import requests

from blockserved.core.errors import ChainError, ChainUnavailable
from blockserved.services.chain_client import (
    TronGridClient,
    address_to_hex,
    encode_args,
    hex_to_address,
    split_words,
)

RECIPIENT_HEX = "41" + "11" * 20
SENDER_HEX = "41" + "22" * 20
RECIPIENT = base58.b58encode_check(bytes.fromhex(RECIPIENT_HEX)).decode()
SENDER = base58.b58encode_check(bytes.fromhex(SENDER_HEX)).decode()
CONTRACT = base58.b58encode_check(bytes.fromhex("41" + "33" * 20)).decode()


class FakeResponse:
    def __init__(self, status_code=200, payload=None, bad_json=False):
        self.status_code = status_code
        self._payload = payload
        self._bad_json = bad_json

    def json(self):
        if self._bad_json:
            raise ValueError("not json")
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.headers = {}
        self.responses = list(responses)
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append({"url": url, "json": json, "timeout": timeout})
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


def make_client(responses, **kwargs):
    sleeps = []
    session = FakeSession(responses)
    client = TronGridClient(
        api_url="https://node.example/",
        contract_address=CONTRACT,
        api_key=kwargs.pop("api_key", "k-1"),
        max_retries=kwargs.pop("max_retries", 3),
        backoff_seconds=1.0,
        session=session,
        sleep=sleeps.append,
        **kwargs,
    )
    return client, session, sleeps


def word(hex_value):
    return hex_value.rjust(64, "0")


def constant(*words):
    return FakeResponse(200, {"result": {"result": True}, "constant_result": ["".join(words)]})


# ─────────────────────────────────────────────
# ENCODING
# ─────────────────────────────────────────────

def test_address_hex_conversion():
    assert address_to_hex(RECIPIENT) == RECIPIENT_HEX
    assert hex_to_address(RECIPIENT_HEX) == RECIPIENT
    assert hex_to_address("0x" + "11" * 20) == RECIPIENT
    assert hex_to_address("41" + "00" * 20) is None


def test_bad_address_is_rejected():
    with pytest.raises(ValueError):
        address_to_hex("Tnot-an-address")


def test_encode_args_uints_and_addresses():
    encoded = encode_args([17, "18", RECIPIENT])
    words = split_words(encoded)
    assert len(words) == 3
    assert int(words[0], 16) == 17
    assert int(words[1], 16) == 18
    assert words[2] == word("11" * 20)


def test_encode_args_rejects_other_types():
    with pytest.raises(ValueError):
        encode_args([1.5])


# ─────────────────────────────────────────────
# TRANSPORT
# ─────────────────────────────────────────────

def test_missing_contract_address_disables_client():
    with pytest.raises(ChainUnavailable):
        TronGridClient(api_url="https://node.example", contract_address="")


def test_api_key_header_and_timeout():
    client, session, _ = make_client([constant(word("0"))])
    client.call_contract("ownerOf(uint256)", [1])

    assert session.headers["TRON-PRO-API-KEY"] == "k-1"
    post = session.posts[0]
    assert post["url"] == "https://node.example/wallet/triggerconstantcontract"
    assert post["timeout"] == client.timeout
    assert post["json"]["function_selector"] == "ownerOf(uint256)"


def test_rate_limited_calls_back_off_and_retry():
    client, session, sleeps = make_client([
        FakeResponse(429),
        FakeResponse(429),
        constant(word(RECIPIENT_HEX[2:])),
    ])
    assert client.token_owner(5) == RECIPIENT
    assert sleeps == [1.0, 2.0]
    assert len(session.posts) == 3


def test_connection_errors_are_retried():
    client, _, sleeps = make_client([
        requests.ConnectionError("reset"),
        constant(word(RECIPIENT_HEX[2:])),
    ])
    assert client.token_owner(5) == RECIPIENT
    assert sleeps == [1.0]


def test_gives_up_after_max_retries():
    client, session, sleeps = make_client([FakeResponse(503)] * 3, max_retries=2)
    with pytest.raises(ChainUnavailable):
        client.call_contract("ownerOf(uint256)", [1])
    assert len(session.posts) == 3
    assert sleeps == [1.0, 2.0]


def test_client_errors_are_not_retried():
    client, session, sleeps = make_client([FakeResponse(400)])
    with pytest.raises(ChainError) as exc:
        client.call_contract("ownerOf(uint256)", [1])
    assert not isinstance(exc.value, ChainUnavailable)
    assert len(session.posts) == 1
    assert sleeps == []


def test_invalid_json_is_a_chain_error():
    client, _, _ = make_client([FakeResponse(200, bad_json=True)])
    with pytest.raises(ChainError):
        client.call_contract("ownerOf(uint256)", [1])


def test_reverted_call_is_a_chain_error():
    client, _, _ = make_client([
        FakeResponse(200, {"result": {"result": False, "message": "REVERT"}}),
    ])
    with pytest.raises(ChainError):
        client.call_contract("ownerOf(uint256)", [1])


# ─────────────────────────────────────────────
# READS
# ─────────────────────────────────────────────

def test_alert_notice_decodes_recipient_sender_and_document():
    client, _, _ = make_client([
        constant(word(RECIPIENT_HEX[2:]), word(SENDER_HEX[2:]), word(format(18, "x"))),
    ])
    notice = client.alert_notice(17)
    assert notice.alert_token_id == "17"
    assert notice.recipient == RECIPIENT
    assert notice.sender == SENDER
    assert notice.document_token_id == "18"


def test_unknown_alert_has_no_recipient():
    client, _, _ = make_client([
        constant(word("0"), word("0"), word("0")),
        constant(word("0"), word("0"), word("0")),
    ])
    assert client.alert_recipient(99) is None
    assert client.document_for_alert(99) is None


# ─────────────────────────────────────────────
# WRITES
# ─────────────────────────────────────────────

def test_send_without_signer_is_unavailable():
    client, session, _ = make_client([])
    with pytest.raises(ChainUnavailable):
        client.send_transaction("acceptNotice(uint256)", [17])
    assert session.posts == []


def test_send_signs_and_broadcasts():
    signed = []

    def signer(tx):
        signed.append(tx)
        return {**tx, "signature": ["sig"]}

    client, session, _ = make_client([
        FakeResponse(200, {"result": {"result": True}, "transaction": {"txID": "abc", "raw_data": {}}}),
        FakeResponse(200, {"result": True, "txid": "abc"}),
    ], signer=signer)

    assert client.send_transaction("acceptNotice(uint256)", [17]) == "abc"
    assert signed == [{"txID": "abc", "raw_data": {}}]
    assert session.posts[1]["url"].endswith("/wallet/broadcasttransaction")
    assert session.posts[1]["json"]["signature"] == ["sig"]


def test_rejected_broadcast_is_a_chain_error():
    client, _, _ = make_client([
        FakeResponse(200, {"transaction": {"txID": "abc"}}),
        FakeResponse(200, {"result": False, "code": "SIGERROR"}),
    ], signer=lambda tx: tx)
    with pytest.raises(ChainError):
        client.send_transaction("acceptNotice(uint256)", [17])


# ─────────────────────────────────────────────
# TRANSACTION RECEIPTS
# ─────────────────────────────────────────────

def test_transaction_receipt_states():
    client, session, _ = make_client([
        FakeResponse(200, {"id": "aa", "blockNumber": 120, "receipt": {"result": "SUCCESS"}}),
        FakeResponse(200, {}),
        FakeResponse(200, {"id": "cc", "blockNumber": 121, "result": "FAILED", "receipt": {"result": "REVERT"}}),
        FakeResponse(200, {"id": "dd", "blockNumber": 122, "receipt": {"net_usage": 268}}),
    ])

    assert client.transaction_succeeded("aa") is True
    assert client.transaction_succeeded("bb") is False
    assert client.transaction_succeeded("cc") is False
    assert client.transaction_succeeded("dd") is True
    assert session.posts[0]["url"].endswith("/wallet/gettransactioninfobyid")
    assert session.posts[1]["json"] == {"value": "bb"}
