from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import distinct, exists, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from app.retention.audit import record_event
from app.retention.models import Address, Connection, Customer, CustomerShop, Order

logger = logging.getLogger(__name__)


class InactiveCustomerError(Exception):
    """Base error for the inactive customers module."""


class QueryError(InactiveCustomerError):
    """The backing store failed while answering a retention query."""


@dataclass(frozen=True)
class InactiveCustomerRow:
    id: int
    email: str
    firstname: str | None
    lastname: str | None
    created_at: datetime


@dataclass(frozen=True)
class AuditContext:
    """Who/why stamped on the audit event written with each deletion."""
    actor: str | None
    run_id: str | None = None
    reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def inactivity_cutoff(days: int, now: datetime | None = None) -> datetime:
    return (now or datetime.utcnow()) - timedelta(days=days)


class InactiveCustomerRepository:
    """
    Queries over the shop's customer tables.

    `session` is the primary (writes, delete-time safety checks). `read_session`
    may point at a replica and is used for the count/page scans only.
    """

    def __init__(
        self,
        session: Session,
        read_session: Session | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.session = session
        self.read_session = read_session or session
        self._clock = clock or datetime.utcnow

    def _end_read(self) -> None:
        # A replica session must not sit on one snapshot for the whole scan.
        if self.read_session is not self.session:
            self.read_session.rollback()

    def _inactive_query(self, s: Session, columns: list, days: int, shop_id: int | None) -> Query:
        cutoff = inactivity_cutoff(days, self._clock())

        # Either one disqualifies a customer on its own; a customer may have
        # zero or many rows in each table, so these stay separate anti-joins.
        recent_login = exists().where(
            Connection.customer_id == Customer.id,
            Connection.created_at >= cutoff,
        )
        recent_order = exists().where(
            Order.customer_id == Customer.id,
            Order.created_at >= cutoff,
        )

        q = (
            s.query(*columns)
            .select_from(Customer)
            .filter(
                Customer.created_at < cutoff,
                Customer.is_deleted.is_(False),
                Customer.is_guest.is_(False),
                ~recent_login,
                ~recent_order,
            )
        )
        if shop_id:
            q = q.join(CustomerShop, CustomerShop.customer_id == Customer.id).filter(CustomerShop.shop_id == shop_id)
        return q

    def count_inactive_customers(self, days: int, shop_id: int | None = None, *, up_to_id: int | None = None) -> int:
        """`up_to_id` limits the count to candidates with id <= that bound."""
        s = self.read_session
        try:
            q = self._inactive_query(s, [func.count(distinct(Customer.id))], days, shop_id)
            if up_to_id is not None:
                q = q.filter(Customer.id <= up_to_id)
            count = int(q.scalar() or 0)
        except SQLAlchemyError as e:
            s.rollback()
            raise QueryError(f"Counting inactive customers failed: {e}") from e
        self._end_read()
        return count

    def fetch_inactive_customers_batch(
        self,
        days: int,
        shop_id: int | None,
        limit: int,
        offset: int,
    ) -> list[InactiveCustomerRow]:
        """
        One page of inactive customers, ascending by id.
        The order is what keeps LIMIT/OFFSET pages from overlapping.
        """
        s = self.read_session
        columns = [Customer.id, Customer.email, Customer.firstname, Customer.lastname, Customer.created_at]
        try:
            rows = (
                self._inactive_query(s, columns, days, shop_id)
                .order_by(Customer.id.asc())
                .limit(limit)
                .offset(offset)
                .all()
            )
        except SQLAlchemyError as e:
            s.rollback()
            raise QueryError(f"Fetching inactive customers (offset={offset}) failed: {e}") from e
        self._end_read()
        return [
            InactiveCustomerRow(
                id=r.id,
                email=r.email,
                firstname=r.firstname,
                lastname=r.lastname,
                created_at=r.created_at,
            )
            for r in rows
        ]

    def has_orders(self, customer_id: int) -> bool:
        """Any order at all, whatever its age or status. Always asks the primary."""
        s = self.session
        try:
            return bool(s.query(exists().where(Order.customer_id == customer_id)).scalar())
        except SQLAlchemyError as e:
            s.rollback()
            raise QueryError(f"Order lookup for customer #{customer_id} failed: {e}") from e

    def reset(self) -> None:
        """Drop whatever transaction the primary session holds (e.g. one a failed statement aborted)."""
        self.session.rollback()

    def get_customer(self, customer_id: int) -> Customer | None:
        # populate_existing: always hit the database, never trust the identity map.
        return self.session.get(Customer, customer_id, populate_existing=True)

    def delete_customer(self, customer_id: int, *, audit: AuditContext | None = None) -> bool:
        """
        Delete one customer with its personal satellites and commit.
        Returns False when the row was already gone.
        """
        s = self.session
        try:
            # Delete satellites first (the schema may not cascade).
            for model in (CustomerShop, Connection, Address):
                s.query(model).filter(model.customer_id == customer_id).delete(synchronize_session=False)

            removed = s.query(Customer).filter(Customer.id == customer_id).delete(synchronize_session=False)
            if not removed:
                s.rollback()
                return False

            if audit is not None:
                record_event(
                    s,
                    actor=audit.actor,
                    action="customer.delete_inactive",
                    entity_type="Customer",
                    entity_id=str(customer_id),
                    reason=audit.reason,
                    metadata=audit.metadata or None,
                    run_id=audit.run_id,
                )
            s.commit()
        except Exception:
            s.rollback()
            raise
        logger.debug("Deleted customer id=%s", customer_id)
        return True
