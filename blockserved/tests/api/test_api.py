import pytest
from fastapi.testclient import TestClient

from blockserved.core.config import Settings
from blockserved.db.session import get_db
from blockserved.main import create_app
from blockserved.models.enums import AdminRole
from blockserved.services.admin_service import create_admin

WALLET = "TJRabPrwbZy45sbavfcjinPJC18kjpRTv8"
OTHER_WALLET = "TLa2f6VPqDgRE67v1736s7bJ8Ray5wYjU7"
SERVER_WALLET = "TXYZopYRdj2D9XRtbG411XZZ3kM5VkAeBf"
IPFS = "Qm" + "a" * 44
SIGNATURE_TX = "5d" * 32
P = "/api/v1"


def make_client(db, **overrides):
    app = create_app(Settings(**overrides))

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    return app, TestClient(app)


@pytest.fixture
def client(db):
    _, c = make_client(db)
    return c


def serve(client, case="34-2501", alert=17, doc=18, recipients=(WALLET,)):
    r = client.put(f"{P}/notices/{case}/service-complete", json={
        "alertTokenId": alert,
        "documentTokenId": doc,
        "ipfsHash": IPFS,
        "encryptionKey": "k-secret",
        "recipients": list(recipients),
        "serverAddress": SERVER_WALLET,
        "noticeType": "Eviction Notice",
        "agency": "Cook County Sheriff",
        "pageCount": 3,
    })
    assert r.status_code == 200, r.text
    return r.json()


def admin_headers(client, db, role=AdminRole.ADMIN):
    create_admin(db, username=f"ops-{role.value.lower()}", password="pw-123", role=role)
    r = client.post(f"{P}/admin/login", json={"username": f"ops-{role.value.lower()}", "password": "pw-123"})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


# ─────────────────────────────────────────────
# SYSTEM
# ─────────────────────────────────────────────

def test_health(client):
    r = client.get(f"{P}/health", headers={"X-Request-Id": "rid-1"})
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.json()["request_id"] == "rid-1"
    assert r.headers["X-Request-Id"] == "rid-1"


# ─────────────────────────────────────────────
# NOTICES
# ─────────────────────────────────────────────

def test_service_complete_is_idempotent(client):
    first = serve(client)
    second = serve(client)

    assert first["created"] is True
    assert second["created"] is False
    notice = second["notice"]
    assert notice["alertTokenId"] == "17"
    assert notice["documentTokenId"] == "18"
    assert notice["pairingSource"] == "confirmed"
    assert notice["recipients"] == [WALLET]
    assert notice["state"] == "SERVED"


def test_bad_ipfs_pointer_is_rejected(client):
    r = client.put(f"{P}/notices/34-1/service-complete", json={"alertTokenId": 1, "ipfsHash": "not-a-cid"})
    assert r.status_code == 422


def test_lookup_routes(client):
    serve(client)

    r = client.get(f"{P}/notices/by-token/18")
    assert r.status_code == 200
    body = r.json()
    assert body["caseNumber"] == "34-2501"
    assert "encryptionKey" not in body and "ipfsHash" not in body

    assert client.get(f"{P}/notices/recipient/{WALLET.lower()}").json()["total"] == 1
    assert client.get(f"{P}/notices/server/{SERVER_WALLET}").json()["total"] == 1
    assert client.get(f"{P}/notices/by-token/999").status_code == 404


def test_accept_needs_a_signature_transaction(client):
    serve(client)
    assert client.post(f"{P}/notices/34-2501/accept", json={}).status_code == 422
    assert client.post(f"{P}/notices/34-2501/accept", json={"txId": "  "}).status_code == 400
    assert client.get(f"{P}/notices/by-token/17").json()["status"] != "ACCEPTED"

    r = client.post(f"{P}/notices/34-2501/accept", json={"txId": SIGNATURE_TX})
    assert r.status_code == 200
    assert r.json()["accepted"] is True
    assert r.json()["acceptanceTxId"] == SIGNATURE_TX
    assert r.json()["state"] == "ACCEPTED"
    assert client.post(f"{P}/notices/nope/accept", json={"txId": SIGNATURE_TX}).status_code == 404


def test_accept_checks_the_transaction_on_chain(db, fake_chain):
    app, c = make_client(db)
    serve(c)

    app.state.chain = fake_chain(unavailable=True)
    assert c.post(f"{P}/notices/34-2501/accept", json={"txId": SIGNATURE_TX}).status_code == 503

    app.state.chain = fake_chain(confirmed={SIGNATURE_TX})
    assert c.post(f"{P}/notices/34-2501/accept", json={"txId": "ab" * 32}).status_code == 409
    r = c.post(f"{P}/notices/34-2501/accept", json={"txId": SIGNATURE_TX})
    assert r.status_code == 200
    assert r.json()["state"] == "ACCEPTED"


# ─────────────────────────────────────────────
# ACCESS
# ─────────────────────────────────────────────

def test_recipient_gets_token_and_document(client):
    serve(client)

    r = client.post(f"{P}/access/verify-recipient", json={"walletAddress": WALLET, "alertTokenId": "17"})
    assert r.status_code == 200
    decision = r.json()
    assert decision["hasAccess"] is True
    assert decision["isRecipient"] is True
    assert decision["accessToken"]

    doc = client.get(f"{P}/access/document/18", headers={"X-Access-Token": decision["accessToken"]})
    assert doc.status_code == 200
    assert doc.json()["ipfsHash"] == IPFS
    assert doc.json()["encryptionKey"] == "k-secret"
    assert doc.json()["usageCount"] == 1


def test_non_recipient_is_denied_but_sees_public_info(client):
    serve(client)

    r = client.post(f"{P}/access/verify-recipient", json={"walletAddress": OTHER_WALLET, "alertTokenId": 17})
    assert r.status_code == 200
    decision = r.json()
    assert decision["hasAccess"] is False
    assert decision["accessToken"] is None
    assert decision["denialReason"] == "wallet_not_recipient"
    assert decision["publicInfo"]["caseNumber"] == "34-2501"


def test_server_is_flagged_but_not_granted(client):
    serve(client)
    decision = client.post(
        f"{P}/access/verify-recipient", json={"walletAddress": SERVER_WALLET, "alertTokenId": 17}
    ).json()
    assert decision["isServer"] is True
    assert decision["hasAccess"] is False


def test_document_requires_valid_token(client):
    serve(client)
    assert client.get(f"{P}/access/document/18").status_code == 401
    assert client.get(f"{P}/access/document/18", headers={"X-Access-Token": "forged"}).status_code == 403


def test_revoked_token_stops_working(client):
    serve(client)
    token = client.post(
        f"{P}/access/verify-recipient", json={"walletAddress": WALLET, "alertTokenId": 17}
    ).json()["accessToken"]

    assert client.post(f"{P}/access/revoke", json={"accessToken": token}).status_code == 200
    assert client.get(f"{P}/access/document/18", headers={"X-Access-Token": token}).status_code == 403
    assert client.post(f"{P}/access/revoke", json={"accessToken": "unknown"}).status_code == 404


def test_access_checks_are_throttled(db):
    _, c = make_client(db, access_rate_limit_per_minute=2)
    body = {"walletAddress": WALLET, "alertTokenId": 17}

    assert c.post(f"{P}/access/verify-recipient", json=body).status_code == 200
    assert c.post(f"{P}/access/verify-recipient", json=body).status_code == 200
    r = c.post(f"{P}/access/verify-recipient", json=body)
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "60"
    # other routes are not throttled
    assert c.get(f"{P}/health").status_code == 200


# ─────────────────────────────────────────────
# VIEWS
# ─────────────────────────────────────────────

def test_view_flow_and_status(client):
    serve(client)

    r = client.post(f"{P}/views/log-view", json={"noticeId": 17, "documentId": 18, "viewerAddress": WALLET})
    assert r.status_code == 200, r.text
    assert r.json()["caseNumber"] == "34-2501"

    history = client.get(f"{P}/views/notice/17").json()
    assert history["caseNumber"] == "34-2501"
    assert len(history["views"]) == 1

    status = client.get(f"{P}/views/status/34-2501", params={"wallet": WALLET}).json()
    assert status["isRecipient"] is True
    assert status["hasViewed"] is True
    assert status["state"] == "VIEWED"


def test_view_by_non_recipient_is_forbidden(client):
    serve(client)
    r = client.post(f"{P}/views/log-view", json={"noticeId": 17, "viewerAddress": OTHER_WALLET})
    assert r.status_code == 403
    r = client.post(f"{P}/views/log-view", json={"noticeId": 999, "viewerAddress": WALLET})
    assert r.status_code == 404


# ─────────────────────────────────────────────
# PROCESS SERVERS
# ─────────────────────────────────────────────

def test_process_server_registry(client, db):
    r = client.post(f"{P}/process-servers", json={"walletAddress": SERVER_WALLET, "name": "Ada", "agency": "Acme"})
    assert r.status_code == 200
    assert r.json()["status"] == "pending"
    assert r.json()["serverId"].startswith("PS-")

    assert client.get(f"{P}/process-servers/{SERVER_WALLET.lower()}").json()["name"] == "Ada"
    assert client.get(f"{P}/process-servers", params={"status": "pending"}).json()["total"] == 1
    assert client.get(f"{P}/process-servers/TNobody").status_code == 404

    # unauthenticated status change is rejected
    assert client.post(f"{P}/process-servers/{SERVER_WALLET}/status", json={"status": "approved"}).status_code in (401, 403)

    auditor = admin_headers(client, db, AdminRole.AUDITOR)
    r = client.post(f"{P}/process-servers/{SERVER_WALLET}/status", json={"status": "approved"}, headers=auditor)
    assert r.status_code == 403

    admin = admin_headers(client, db)
    r = client.post(f"{P}/process-servers/{SERVER_WALLET}/status", json={"status": "approved"}, headers=admin)
    assert r.status_code == 200
    assert r.json()["status"] == "approved"

    r = client.post(f"{P}/process-servers/{SERVER_WALLET}/status", json={"status": "pending"}, headers=admin)
    assert r.status_code == 409

    r = client.patch(f"{P}/process-servers/{SERVER_WALLET}", json={"jurisdiction": "Cook County"}, headers=admin)
    assert r.status_code == 200
    assert r.json()["jurisdiction"] == "Cook County"


# ─────────────────────────────────────────────
# ADMIN
# ─────────────────────────────────────────────

def test_admin_login_rejects_bad_password(client, db):
    create_admin(db, username="ops", password="right")
    assert client.post(f"{P}/admin/login", json={"username": "ops", "password": "wrong"}).status_code == 401


def test_access_attempts_are_auditable(client, db):
    serve(client)
    client.post(f"{P}/access/verify-recipient", json={"walletAddress": OTHER_WALLET, "alertTokenId": 17})
    client.post(f"{P}/access/verify-recipient", json={"walletAddress": WALLET, "alertTokenId": 17})

    assert client.get(f"{P}/admin/access-attempts").status_code in (401, 403)

    headers = admin_headers(client, db, AdminRole.AUDITOR)
    r = client.get(f"{P}/admin/access-attempts", params={"granted": "false"}, headers=headers)
    assert r.status_code == 200
    records = r.json()["records"]
    assert [x["walletAddress"] for x in records] == [OTHER_WALLET]
    assert records[0]["denialReason"] == "wallet_not_recipient"


def test_recipient_fix_endpoint(db, fake_chain):
    app, c = make_client(db)
    app.state.chain = fake_chain(alerts={"17": (WALLET, "18")})
    serve(c, recipients=[WALLET.lower()])
    headers = admin_headers(c, db)

    r = c.post(f"{P}/admin/reconciliation/recipient-fix", json={"caseNumber": "34-2501", "walletAddress": WALLET}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["after"] == {"recipients": [WALLET]}

    r = c.post(f"{P}/admin/reconciliation/recipient-fix", json={"caseNumber": "34-2501", "walletAddress": OTHER_WALLET}, headers=headers)
    assert r.status_code == 409

    log = c.get(f"{P}/admin/reconciliation-log", headers=headers).json()["records"]
    assert [e["action"] for e in log] == ["RECIPIENT_FIX"]

    auditor = admin_headers(c, db, AdminRole.AUDITOR)
    r = c.post(f"{P}/admin/reconciliation/recipient-fix", json={"caseNumber": "34-2501", "walletAddress": WALLET}, headers=auditor)
    assert r.status_code == 403


# ─────────────────────────────────────────────
# METADATA
# ─────────────────────────────────────────────

def test_metadata_roundtrip(client):
    assert client.get(f"{P}/metadata/17").status_code == 404
    r = client.put(f"{P}/metadata/17", json={"name": "Legal Notice #17", "external_url": "https://example.test"})
    assert r.status_code == 200
    doc = client.get(f"{P}/metadata/17").json()
    assert doc["name"] == "Legal Notice #17"
    assert doc["external_url"] == "https://example.test"
    assert client.get(f"{P}/metadata").json()["items"][0]["tokenId"] == "17"


def test_unsafe_request_id_is_replaced(client):
    r = client.get(f"{P}/health", headers={"X-Request-Id": "bad id; drop"})
    assert r.headers["X-Request-Id"] != "bad id; drop"
    assert r.json()["request_id"] == r.headers["X-Request-Id"]
