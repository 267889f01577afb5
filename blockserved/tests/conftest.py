import os

# Settings are read once; point them at throwaway values before any import.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

# FORCE model registration
import blockserved.models  # noqa

from blockserved.core.errors import ChainUnavailable
from blockserved.db.base import Base

engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN.
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, _record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


Base.metadata.create_all(engine)


@pytest.fixture(scope="function")
def db():
    connection = engine.connect()
    transaction = connection.begin()

    # service commits become savepoint releases; everything is rolled back after the test
    session = Session(bind=connection, join_transaction_mode="create_savepoint", autoflush=False)

    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


class FakeChain:
    """
    Stand-in for TronGridClient's read helpers.
    alerts: alert id -> (recipient, document id)
    confirmed: ids of successful transactions
    """

    def __init__(self, alerts=None, unavailable=False, confirmed=()):
        self.alerts = dict(alerts or {})
        self.confirmed = set(confirmed)
        self.unavailable = unavailable
        self.calls = []

    def _lookup(self, alert_id):
        self.calls.append(str(alert_id))
        if self.unavailable:
            raise ChainUnavailable("node unreachable")
        return self.alerts.get(str(alert_id))

    def document_for_alert(self, alert_id):
        hit = self._lookup(alert_id)
        return hit[1] if hit else None

    def alert_recipient(self, alert_id):
        hit = self._lookup(alert_id)
        return hit[0] if hit else None

    def transaction_succeeded(self, tx_id):
        self.calls.append(tx_id)
        if self.unavailable:
            raise ChainUnavailable("node unreachable")
        return tx_id in self.confirmed


@pytest.fixture
def fake_chain():
    return FakeChain


WALLET = "TJRabPrwbZy45sbavfcjinPJC18kjpRTv8"
OTHER_WALLET = "TLa2f6VPqDgRE67v1736s7bJ8Ray5wYjU7"
SERVER_WALLET = "TXYZopYRdj2D9XRtbG411XZZ3kM5VkAeBf"
