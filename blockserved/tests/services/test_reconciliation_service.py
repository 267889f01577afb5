import pytest
from sqlalchemy import func, select

from blockserved.core.errors import NoticeNotFound, RepairRefused
from blockserved.models.enums import PairingSource
from blockserved.models.notice_record import NoticeRecord
from blockserved.models.reconciliation_log import ReconciliationLogEntry
from blockserved.services.notice_store import NoticeStore
from blockserved.services.reconciliation_service import ReconciliationService

WALLET = "TJRabPrwbZy45sbavfcjinPJC18kjpRTv8"
OTHER_WALLET = "TLa2f6VPqDgRE67v1736s7bJ8Ray5wYjU7"


def seed(db, case_number, alert, doc, recipients):
    row, _ = NoticeStore().upsert_notice(db, {
        "case_number": case_number,
        "alert_token_id": alert,
        "document_token_id": doc,
        "recipients": recipients,
    })
    return row


def rows_by_alert(db):
    return {r.alert_token_id: r for r in db.execute(select(NoticeRecord)).scalars().all()}


def log_entries(db, run_id):
    return db.execute(select(ReconciliationLogEntry).where(ReconciliationLogEntry.run_id == run_id)).scalars().all()


# ─────────────────────────────────────────────
# MISSING RECORDS
# ─────────────────────────────────────────────

def test_missing_records_are_reported_in_order(db):
    seed(db, "34-0037", "37", "38", [WALLET])
    svc = ReconciliationService()
    assert svc.find_missing_records(db, WALLET, ["1", "17", "29", "37", "17"]) == ["1", "17", "29"]


def test_repair_inserts_flagged_placeholders_without_touching_existing(db):
    existing = seed(db, "34-0037", "37", "38", [WALLET])
    svc = ReconciliationService()

    report = svc.repair_missing_records(db, WALLET, ["1", "17", "29", "37"])

    assert report.missing == ["1", "17", "29"]
    assert report.to_dict()["applied"] == 3
    assert report.complete

    rows = rows_by_alert(db)
    assert set(rows) == {"1", "17", "29", "37"}
    for alert in ("1", "17", "29"):
        r = rows[alert]
        assert r.case_number == f"UNVERIFIED-{alert}"
        assert r.document_token_id == str(int(alert) + 1)
        assert r.pairing_source == PairingSource.inferred.value
        assert r.needs_verification is True
        # no chain confirmation, so no access is granted
        assert r.recipients == []

    assert rows["37"].id == existing.id
    assert rows["37"].case_number == "34-0037"
    assert rows["37"].document_token_id == "38"

    entries = log_entries(db, report.run_id)
    assert len(entries) == 3
    assert all(e.action == "INSERT_PLACEHOLDER" and e.status == "applied" for e in entries)
    assert all(e.after_json["case_number"].startswith("UNVERIFIED-") for e in entries)


def test_repair_rerun_does_not_duplicate(db):
    svc = ReconciliationService()
    svc.repair_missing_records(db, WALLET, ["1", "17"])
    second = svc.repair_missing_records(db, WALLET, ["1", "17"])

    assert second.to_dict()["applied"] == 0
    assert second.to_dict()["flagged"] == 2
    assert db.execute(select(func.count()).select_from(NoticeRecord)).scalar_one() == 2


def test_chain_confirmed_pairing_and_recipient(db, fake_chain):
    chain = fake_chain(alerts={"1": (WALLET, "501")})
    svc = ReconciliationService(chain=chain)

    report = svc.repair_missing_records(db, WALLET.lower(), ["1"])
    row = rows_by_alert(db)["1"]

    assert report.to_dict()["applied"] == 1
    assert row.document_token_id == "501"
    assert row.pairing_source == PairingSource.confirmed.value
    assert row.pairing_detail.startswith("chain:")
    # recipient is stored in the chain's casing
    assert row.recipients == [WALLET]
    assert svc.find_missing_records(db, WALLET, ["1"]) == []


def test_chain_outage_falls_back_to_inference(db, fake_chain):
    svc = ReconciliationService(chain=fake_chain(unavailable=True))
    report = svc.repair_missing_records(db, WALLET, ["7"])
    row = rows_by_alert(db)["7"]

    assert report.complete
    assert row.document_token_id == "8"
    assert row.pairing_source == PairingSource.inferred.value
    assert row.recipients == []


def test_chain_naming_someone_else_grants_nobody(db, fake_chain):
    svc = ReconciliationService(chain=fake_chain(alerts={"3": (OTHER_WALLET, "4")}))
    svc.repair_missing_records(db, WALLET, ["3"])
    assert rows_by_alert(db)["3"].recipients == []


def test_record_for_another_recipient_is_flagged_not_overwritten(db):
    seed(db, "34-0029", "29", "30", [OTHER_WALLET])
    report = ReconciliationService().repair_missing_records(db, WALLET, ["29"])

    assert report.actions[0].status == "flagged"
    assert rows_by_alert(db)["29"].recipients == [OTHER_WALLET]


def test_non_numeric_alert_has_no_guessed_document(db):
    ReconciliationService().repair_missing_records(db, WALLET, ["abc"])
    row = rows_by_alert(db)["abc"]
    assert row.document_token_id is None
    assert row.pairing_detail == "heuristic:non_numeric_alert"


def test_one_failed_unit_does_not_stop_the_run(db, fake_chain):
    class FlakyChain(fake_chain):
        def document_for_alert(self, alert_id):
            if str(alert_id) == "17":
                raise RuntimeError("decoder bug")
            return super().document_for_alert(alert_id)

    report = ReconciliationService(chain=FlakyChain()).repair_missing_records(db, WALLET, ["1", "17", "29"])

    statuses = {a.alert_token_id: a.status for a in report.actions}
    assert statuses == {"1": "applied", "17": "failed", "29": "applied"}
    assert not report.complete
    assert set(rows_by_alert(db)) == {"1", "29"}
    assert any(e.status == "failed" for e in log_entries(db, report.run_id))


def test_failed_log_write_stays_with_its_unit(db, fake_chain):
    class FlakyChain(fake_chain):
        def document_for_alert(self, alert_id):
            if str(alert_id) == "17":
                raise RuntimeError("decoder bug")
            return super().document_for_alert(alert_id)

    class LogWriteFails(ReconciliationService):
        def _log_standalone(self, db, run_id, action):
            if action.status == "failed":
                raise RuntimeError("log table locked")
            super()._log_standalone(db, run_id, action)

    report = LogWriteFails(chain=FlakyChain()).repair_missing_records(db, WALLET, ["1", "17", "29"])

    actions = {a.alert_token_id: a for a in report.actions}
    assert [a.status for a in report.actions] == ["applied", "failed", "applied"]
    assert actions["17"].message == "decoder bug; log write failed"
    assert set(rows_by_alert(db)) == {"1", "29"}


# ─────────────────────────────────────────────
# RECIPIENT DRIFT
# ─────────────────────────────────────────────

def test_drift_classifications(db, fake_chain):
    seed(db, "C-1", "1", "2", [WALLET])            # exact match: not reported
    seed(db, "C-3", "3", "4", [WALLET.lower()])    # casing differs
    seed(db, "C-5", "5", "6", [OTHER_WALLET])      # chain says WALLET
    seed(db, "C-7", "7", "8", [OTHER_WALLET])      # chain says OTHER_WALLET
    chain = fake_chain(alerts={"5": (WALLET, "6"), "7": (OTHER_WALLET, "8")})

    report = ReconciliationService(chain=chain).detect_recipient_drift(db, WALLET, ["1", "3", "5", "7"])
    found = {a.alert_token_id: a.message for a in report.actions}

    assert found == {"3": "ambiguous_case", "5": "chain_confirms_wallet", "7": "chain_disagrees"}
    assert all(a.status == "flagged" for a in report.actions)
    # detection never mutates
    assert rows_by_alert(db)["5"].recipients == [OTHER_WALLET]
    assert len(log_entries(db, report.run_id)) == 3


def test_drift_without_chain_is_unverified(db):
    seed(db, "C-5", "5", "6", [OTHER_WALLET])
    report = ReconciliationService().detect_recipient_drift(db, WALLET, ["5"])
    assert report.actions[0].message == "chain_unavailable"


def test_recipient_fix_requires_chain_confirmation(db, fake_chain):
    seed(db, "C-5", "5", "6", [OTHER_WALLET])
    svc = ReconciliationService()

    with pytest.raises(RepairRefused):
        svc.apply_recipient_fix(db, "C-5", WALLET)
    with pytest.raises(RepairRefused):
        svc.apply_recipient_fix(db, "C-5", WALLET, chain=fake_chain(alerts={"5": (OTHER_WALLET, "6")}))
    with pytest.raises(RepairRefused):
        svc.apply_recipient_fix(db, "C-5", WALLET, chain=fake_chain(unavailable=True))
    with pytest.raises(NoticeNotFound):
        svc.apply_recipient_fix(db, "C-404", WALLET, chain=fake_chain())

    assert rows_by_alert(db)["5"].recipients == [OTHER_WALLET]


def test_recipient_fix_applies_chain_casing(db, fake_chain):
    seed(db, "C-3", "3", "4", [OTHER_WALLET, WALLET.lower()])
    chain = fake_chain(alerts={"3": (WALLET, "4")})

    action = ReconciliationService(chain=chain).apply_recipient_fix(db, "C-3", WALLET.lower(), run_id="run-fix")

    assert action.status == "applied"
    assert action.before == {"recipients": [OTHER_WALLET, WALLET.lower()]}
    assert rows_by_alert(db)["3"].recipients == [OTHER_WALLET, WALLET]
    entry = log_entries(db, "run-fix")[0]
    assert entry.after_json == {"recipients": [OTHER_WALLET, WALLET]}


# ─────────────────────────────────────────────
# COLUMN TYPES
# ─────────────────────────────────────────────

def test_column_repair_is_skipped_off_postgres(db):
    report = ReconciliationService().repair_column_types(db, [("case_service_records", "alert_token_id")])
    assert report.actions[0].status == "skipped"
    assert "unsupported dialect" in report.actions[0].message
