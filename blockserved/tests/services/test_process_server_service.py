import re

import pytest

from blockserved.services.process_server_service import ProcessServerService, new_server_id

SERVER_WALLET = "TXYZopYRdj2D9XRtbG411XZZ3kM5VkAeBf"


def test_server_id_format():
    assert re.fullmatch(r"PS-[0-9A-Z]+-[0-9A-F]{3}", new_server_id())


def test_register_creates_pending_server(db):
    svc = ProcessServerService()
    row, created = svc.register(db, wallet_address=f"  {SERVER_WALLET} ", display_name="Ada Process", agency="Acme Serve")

    assert created is True
    assert row.wallet_address == SERVER_WALLET
    assert row.status == "pending"
    assert row.server_id.startswith("PS-")
    assert svc.is_active(db, SERVER_WALLET) is False


def test_register_again_only_fills_blanks(db):
    svc = ProcessServerService()
    first, _ = svc.register(db, wallet_address=SERVER_WALLET, display_name="Ada Process")
    again, created = svc.register(
        db, wallet_address=SERVER_WALLET.lower(), display_name="Someone Else", phone="555-0100"
    )

    assert created is False
    assert again.id == first.id
    assert again.server_id == first.server_id
    assert again.display_name == "Ada Process"
    assert again.phone == "555-0100"


def test_register_requires_wallet(db):
    with pytest.raises(ValueError):
        ProcessServerService().register(db, wallet_address="  ")


def test_update_profile(db):
    svc = ProcessServerService()
    svc.register(db, wallet_address=SERVER_WALLET)
    row = svc.update(db, SERVER_WALLET, jurisdiction="Cook County", license_number="L-42")
    assert row.jurisdiction == "Cook County"
    assert row.license_number == "L-42"

    with pytest.raises(ValueError):
        svc.update(db, SERVER_WALLET, status="active")
    with pytest.raises(LookupError):
        svc.update(db, "TUnknownWallet", agency="x")


def test_status_lifecycle(db):
    svc = ProcessServerService()
    svc.register(db, wallet_address=SERVER_WALLET)

    with pytest.raises(ValueError):
        svc.set_status(db, SERVER_WALLET, "active")

    svc.set_status(db, SERVER_WALLET, "approved")
    svc.set_status(db, SERVER_WALLET, "active")
    assert svc.is_active(db, SERVER_WALLET)

    svc.set_status(db, SERVER_WALLET, "suspended")
    assert not svc.is_active(db, SERVER_WALLET)
    row = svc.set_status(db, SERVER_WALLET, "suspended")
    assert row.status == "suspended"

    with pytest.raises(ValueError):
        svc.set_status(db, SERVER_WALLET, "deleted")
    with pytest.raises(LookupError):
        svc.set_status(db, "TUnknownWallet", "approved")


def test_list_filters(db):
    svc = ProcessServerService()
    svc.register(db, wallet_address=SERVER_WALLET, agency="Acme Serve", jurisdiction="Cook County")
    svc.register(db, wallet_address="TLa2f6VPqDgRE67v1736s7bJ8Ray5wYjU7", agency="Other Co", jurisdiction="Kane County")
    svc.set_status(db, SERVER_WALLET, "approved")

    assert [r.wallet_address for r in svc.list(db, status="approved")] == [SERVER_WALLET]
    assert [r.agency for r in svc.list(db, jurisdiction="Kane County")] == ["Other Co"]
    assert [r.agency for r in svc.list(db, q="acme")] == ["Acme Serve"]
    assert len(svc.list(db)) == 2
