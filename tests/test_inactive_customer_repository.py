"""Tests for the inactive customer queries (real SQLite database)."""
import json
from datetime import datetime, timedelta

import pytest

from app.retention import create_app
from app.retention.db import open_session, session_scope
from app.retention.models import Address, AuditEvent, Base, Connection, Customer, CustomerShop, Order
from app.retention.modules.inactive_customers.repository import (
    AuditContext,
    InactiveCustomerRepository,
    QueryError,
)

NOW = datetime.utcnow()


def _ago(days: int) -> datetime:
    return NOW - timedelta(days=days)


def _add_customer(s, email, *, registered=800, guest=False, deleted=False, shops=(), logins=(), orders=()):
    c = Customer(
        email=email,
        firstname=email.split("@")[0].title(),
        lastname="Test",
        created_at=_ago(registered),
        updated_at=_ago(registered),
        is_guest=guest,
        is_deleted=deleted,
    )
    s.add(c)
    s.flush()
    for shop_id in shops:
        s.add(CustomerShop(customer_id=c.id, shop_id=shop_id))
    for days in logins:
        s.add(Connection(customer_id=c.id, created_at=_ago(days)))
    for days in orders:
        s.add(Order(customer_id=c.id, reference=f"REF{c.id}", status="delivered", created_at=_ago(days)))
    return c


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("DATABASE_REPLICA_URL", "USE_READ_REPLICA"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        _add_customer(s, "idle@example.com")
        _add_customer(s, "old-login@example.com", logins=(400, 900))
        _add_customer(s, "old-order@example.com", orders=(500,))
        _add_customer(s, "multi-shop@example.com", shops=(1, 2))
        _add_customer(s, "recent-login@example.com", logins=(10,))
        _add_customer(s, "recent-order@example.com", orders=(30, 700))
        _add_customer(s, "guest@example.com", guest=True)
        _add_customer(s, "soft-deleted@example.com", deleted=True)
        _add_customer(s, "new@example.com", registered=100)
    return app


@pytest.fixture()
def repo(app):
    s = open_session(app)
    yield InactiveCustomerRepository(s)
    s.close()


def _emails(rows):
    return [r.email for r in rows]


def test_count_applies_all_inactivity_predicates(repo):
    # idle, old-login, old-order, multi-shop
    assert repo.count_inactive_customers(365) == 4


def test_fetch_returns_candidates_in_id_order(repo):
    rows = repo.fetch_inactive_customers_batch(365, None, 100, 0)
    assert _emails(rows) == [
        "idle@example.com",
        "old-login@example.com",
        "old-order@example.com",
        "multi-shop@example.com",
    ]
    assert [r.id for r in rows] == sorted(r.id for r in rows)
    assert rows[0].firstname == "Idle"
    assert rows[0].created_at < NOW - timedelta(days=365)


def test_longer_threshold_narrows_candidates(repo):
    # old-login (400 days ago) is active again for a 450-day threshold; old-order is at 500.
    assert _emails(repo.fetch_inactive_customers_batch(450, None, 100, 0)) == [
        "idle@example.com",
        "old-order@example.com",
        "multi-shop@example.com",
    ]


def test_shop_scope(repo):
    assert repo.count_inactive_customers(365, shop_id=1) == 1
    assert repo.count_inactive_customers(365, shop_id=2) == 1
    assert repo.count_inactive_customers(365, shop_id=3) == 0
    assert _emails(repo.fetch_inactive_customers_batch(365, 1, 10, 0)) == ["multi-shop@example.com"]


def test_shop_scope_counts_distinct_customers(app, repo):
    with session_scope(app) as s:
        _add_customer(s, "shop-one@example.com", shops=(1,))
    assert repo.count_inactive_customers(365, shop_id=1) == 2
    assert repo.count_inactive_customers(365) == 5


def test_pages_do_not_overlap_and_end_short(repo):
    first = repo.fetch_inactive_customers_batch(365, None, 3, 0)
    second = repo.fetch_inactive_customers_batch(365, None, 3, 3)
    third = repo.fetch_inactive_customers_batch(365, None, 3, 6)
    assert len(first) == 3
    assert len(second) == 1
    assert third == []
    assert not {r.id for r in first} & {r.id for r in second}


@pytest.mark.parametrize("limit", [1, 2, 3, 4, 5])
def test_count_matches_paged_distinct_ids(repo, limit):
    ids = []
    offset = 0
    while True:
        page = repo.fetch_inactive_customers_batch(365, None, limit, offset)
        ids.extend(r.id for r in page)
        offset += limit
        if len(page) < limit:
            break
    assert len(set(ids)) == len(ids) == repo.count_inactive_customers(365)


def test_count_up_to_id_bounds_the_candidates(app, repo):
    with session_scope(app) as s:
        by_email = {c.email: c.id for c in s.query(Customer).all()}
    assert repo.count_inactive_customers(365, up_to_id=by_email["old-login@example.com"]) == 2
    assert repo.count_inactive_customers(365, up_to_id=by_email["new@example.com"]) == 4
    assert repo.count_inactive_customers(365, up_to_id=0) == 0
    assert repo.count_inactive_customers(365, shop_id=1, up_to_id=by_email["old-order@example.com"]) == 0


def test_reset_discards_pending_work(app, repo):
    repo.session.add(Customer(email="half-done@example.com", created_at=NOW, updated_at=NOW))
    repo.session.flush()
    repo.reset()

    with session_scope(app) as s:
        assert s.query(Customer).filter(Customer.email == "half-done@example.com").count() == 0
    assert repo.count_inactive_customers(365) == 4


def test_has_orders_ignores_age(app, repo):
    with session_scope(app) as s:
        by_email = {c.email: c.id for c in s.query(Customer).all()}
    assert repo.has_orders(by_email["old-order@example.com"]) is True
    assert repo.has_orders(by_email["recent-order@example.com"]) is True
    assert repo.has_orders(by_email["idle@example.com"]) is False


def test_get_customer_missing(repo):
    assert repo.get_customer(999_999) is None


def test_delete_customer_removes_personal_data_and_audits(app, repo):
    with session_scope(app) as s:
        c = _add_customer(s, "erase-me@example.com", shops=(1,), logins=(600,))
        s.add(Address(customer_id=c.id, address1="1 Rue de Paris", city="Paris", zip="75001", country="FR"))
        customer_id = c.id

    audit = AuditContext(actor="test", run_id="run-1", reason="Inactive for 365 days", metadata={"inactive_days": 365})
    assert repo.delete_customer(customer_id, audit=audit) is True

    with session_scope(app) as s:
        assert s.get(Customer, customer_id) is None
        assert s.query(CustomerShop).filter(CustomerShop.customer_id == customer_id).count() == 0
        assert s.query(Connection).filter(Connection.customer_id == customer_id).count() == 0
        assert s.query(Address).filter(Address.customer_id == customer_id).count() == 0

        ev = s.query(AuditEvent).one()
        assert ev.action == "customer.delete_inactive"
        assert ev.entity_id == str(customer_id)
        assert ev.run_id == "run-1"
        assert ev.actor == "test"
        assert json.loads(ev.metadata_json) == {"inactive_days": 365}
        # No personal data in the audit trail.
        assert "erase-me" not in (ev.metadata_json or "") + (ev.reason or "")


def test_delete_customer_already_gone(app, repo):
    assert repo.delete_customer(999_999, audit=AuditContext(actor="test")) is False
    with session_scope(app) as s:
        assert s.query(AuditEvent).count() == 0


def test_get_customer_sees_deletion_from_other_session(app, repo):
    with session_scope(app) as s:
        customer_id = s.query(Customer).filter(Customer.email == "idle@example.com").one().id
    assert repo.get_customer(customer_id) is not None

    with session_scope(app) as s:
        s.query(Customer).filter(Customer.id == customer_id).delete()

    assert repo.get_customer(customer_id) is None


def test_query_error_when_tables_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'empty.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    s = open_session(app)
    try:
        repo = InactiveCustomerRepository(s)
        with pytest.raises(QueryError):
            repo.count_inactive_customers(365)
        with pytest.raises(QueryError):
            repo.fetch_inactive_customers_batch(365, None, 10, 0)
        with pytest.raises(QueryError):
            repo.has_orders(1)
    finally:
        s.close()


def test_clock_is_injectable(app):
    s = open_session(app)
    try:
        # Two years from now only the guest and the soft-deleted account stay out.
        repo = InactiveCustomerRepository(s, clock=lambda: NOW + timedelta(days=730))
        emails = _emails(repo.fetch_inactive_customers_batch(365, None, 100, 0))
        assert "new@example.com" in emails
        assert "recent-login@example.com" in emails
        assert "guest@example.com" not in emails
        assert "soft-deleted@example.com" not in emails
    finally:
        s.close()
