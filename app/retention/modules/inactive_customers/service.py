from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from app.retention.modules.inactive_customers.repository import AuditContext

if TYPE_CHECKING:
    from app.retention.modules.inactive_customers.repository import (
        InactiveCustomerRepository,
        InactiveCustomerRow,
    )

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InactivityCriteria:
    inactive_days: int
    shop_id: int | None = None

    def __post_init__(self) -> None:
        if self.inactive_days < 1:
            raise ValueError("inactive_days must be greater than 0.")


@dataclass(frozen=True)
class ProgressEvent:
    current: int
    total: int
    email: str


ProgressCallback = Callable[[int, int, str], None]


@dataclass(frozen=True)
class DeletionOutcome:
    deleted: int = 0
    skipped: int = 0
    errors: tuple[str, ...] = ()


@dataclass
class _OutcomeBuilder:
    deleted: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def freeze(self) -> DeletionOutcome:
        return DeletionOutcome(deleted=self.deleted, skipped=self.skipped, errors=tuple(self.errors))


def _require_batch_size(batch_size: int) -> None:
    if batch_size < 1:
        raise ValueError("batch_size must be greater than 0.")


class InactiveCustomerService:
    """Batch scans over inactive customers: email export and removal."""

    def __init__(self, repository: InactiveCustomerRepository, *, actor: str | None = None) -> None:
        self.repository = repository
        self.actor = actor

    def count_inactive_customers(self, criteria: InactivityCriteria) -> int:
        return self.repository.count_inactive_customers(criteria.inactive_days, criteria.shop_id)

    def iter_emails(self, criteria: InactivityCriteria, batch_size: int = 1000) -> Iterator[str]:
        _require_batch_size(batch_size)
        offset = 0
        while True:
            batch = self.repository.fetch_inactive_customers_batch(
                criteria.inactive_days, criteria.shop_id, batch_size, offset
            )
            logger.debug("Export page offset=%s size=%s", offset, len(batch))
            for row in batch:
                yield row.email
            offset += batch_size
            if len(batch) < batch_size:
                break

    def export_emails(self, criteria: InactivityCriteria, batch_size: int = 1000) -> list[str]:
        return list(self.iter_emails(criteria, batch_size))

    def remove_inactive_customers(
        self,
        criteria: InactivityCriteria,
        batch_size: int = 100,
        dry_run: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> DeletionOutcome:
        """
        Delete (or, with dry_run, only count) inactive customers page by page.

        `total` is counted once up front and only feeds the progress callback;
        it is not refreshed as rows disappear.

        Offsets: a dry run leaves every row in place, so the offset moves one
        full page each round. A live run removes rows, which pulls the next
        candidates into the window, so the offset stays at 0 while every row
        of a page is removed. Once a row stays behind (skipped, failed) the
        offset becomes the number of candidates still at or before the last
        id handled, so retained rows are not handed back and nothing that
        dropped out of the set shifts the window past an unprocessed row.
        """
        _require_batch_size(batch_size)
        run_id = uuid.uuid4().hex
        audit = AuditContext(
            actor=self.actor,
            run_id=run_id,
            reason=f"Inactive for {criteria.inactive_days} days",
            metadata={"inactive_days": criteria.inactive_days, "shop_id": criteria.shop_id},
        )

        outcome = _OutcomeBuilder()
        processed = 0
        offset = 0
        total = self.repository.count_inactive_customers(criteria.inactive_days, criteria.shop_id)
        logger.info(
            "Inactive customer removal start run_id=%s days=%s shop_id=%s total=%s dry_run=%s",
            run_id,
            criteria.inactive_days,
            criteria.shop_id,
            total,
            dry_run,
        )

        while True:
            batch = self.repository.fetch_inactive_customers_batch(
                criteria.inactive_days, criteria.shop_id, batch_size, offset
            )
            logger.debug("Removal page offset=%s size=%s", offset, len(batch))

            retained = 0
            for row in batch:
                processed += 1
                if not self._process_row(row, processed, total, dry_run, audit, outcome, on_progress):
                    retained += 1

            if len(batch) < batch_size:
                break

            if dry_run:
                offset += batch_size
            elif retained or offset:
                # Step over only what is still a candidate at or before the
                # last id handled; a skipped row may have left the set since.
                offset = self.repository.count_inactive_customers(
                    criteria.inactive_days, criteria.shop_id, up_to_id=batch[-1].id
                )

        result = outcome.freeze()
        logger.info(
            "Inactive customer removal done run_id=%s processed=%s deleted=%s skipped=%s errors=%s",
            run_id,
            processed,
            result.deleted,
            result.skipped,
            len(result.errors),
        )
        return result

    def _process_row(
        self,
        row: InactiveCustomerRow,
        processed: int,
        total: int,
        dry_run: bool,
        audit: AuditContext,
        outcome: _OutcomeBuilder,
        on_progress: ProgressCallback | None,
    ) -> bool:
        """
        Handle one candidate. Returns True when the row is gone from the
        store afterwards (deleted now, or already missing). Dry runs never
        remove anything.
        """
        try:
            # The page may be stale; act on what the store holds now.
            customer = self.repository.get_customer(row.id)
            if customer is None:
                return True

            if on_progress is not None:
                on_progress(processed, total, customer.email)

            if self.repository.has_orders(customer.id):
                outcome.errors.append(
                    f"Customer #{customer.id} ({customer.email}) has orders and cannot be deleted"
                )
                outcome.skipped += 1
                return False

            if dry_run:
                outcome.deleted += 1
                return False

            if self.repository.delete_customer(customer.id, audit=audit):
                outcome.deleted += 1
                return True

            # Nothing matched the delete: the row vanished under us.
            outcome.errors.append(f"Error deleting customer #{customer.id} ({customer.email})")
            return True
        except Exception as e:
            logger.warning("Inactive customer removal failed for id=%s: %s", row.id, e)
            outcome.errors.append(f"Exception for customer #{row.id}: {e}")
            # An aborted transaction would fail every record after this one.
            self.repository.reset()
            return False
