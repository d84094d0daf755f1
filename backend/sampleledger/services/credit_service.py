# Overview: Credit ledger poster; the only writer of partnership balances.

"""
Credit Ledger Invariants (authoritative)

- BrandPartnership.credit_balance_cents is a running balance derived from
  CreditTransaction rows; it is never computed by summing history on the
  hot path.
- Each posting reads the balance under lock, computes the new balance,
  writes it back, and appends a CreditTransaction carrying the new balance
  as its snapshot, all inside one DB transaction.
- Deductions are clamped to the current balance. The clamped amount is what
  is logged and returned (partial application, never rejection).
- Balance never goes negative.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func

from ..extensions import db
from ..models import BrandPartnership, CreditTransaction, Store
from ..models.partnerships import CREDIT_EARNED, CREDIT_DEDUCTED
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


class CreditLedgerError(Exception):
    """Raised for invalid credit postings."""
    pass


class PartnershipNotFoundError(CreditLedgerError):
    pass


@dataclass(frozen=True)
class CreditPosting:
    """Outcome of one posting. transaction is None when nothing was applied."""
    partnership_id: int
    requested_cents: int
    applied_cents: int
    balance_cents: int
    transaction: Optional[CreditTransaction]

    @property
    def clamped(self) -> bool:
        return self.applied_cents != self.requested_cents


def _load_partnership_locked(partnership_id: int) -> BrandPartnership:
    query = db.session.query(BrandPartnership).filter_by(id=partnership_id)
    partnership = lock_for_update(query).populate_existing().first()
    if partnership is None:
        raise PartnershipNotFoundError(f"Partnership {partnership_id} not found")
    return partnership


def apply_credit(
    *,
    partnership_id: int,
    amount_cents: int,
    reason: str | None = None,
    conversion_id: int | None = None,
    wholesale_order_id: int | None = None,
    occurred_at=None,
) -> CreditPosting:
    """
    Core posting logic without retry or commit.

    Callers that need the posting to share a unit of work with other writes
    (conversion insert, wholesale order creation) call this and commit
    themselves; everyone else uses post_credit().
    """
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise CreditLedgerError("amount_cents must be an integer")

    partnership = _load_partnership_locked(partnership_id)
    current = partnership.credit_balance_cents or 0

    if amount_cents < 0:
        applied = -min(-amount_cents, current)
    else:
        applied = amount_cents

    if applied == 0:
        return CreditPosting(
            partnership_id=partnership.id,
            requested_cents=amount_cents,
            applied_cents=0,
            balance_cents=current,
            transaction=None,
        )

    new_balance = current + applied
    partnership.credit_balance_cents = new_balance

    tx = CreditTransaction(
        partnership_id=partnership.id,
        store_id=partnership.store_id,
        transaction_type=CREDIT_EARNED if applied > 0 else CREDIT_DEDUCTED,
        amount_cents=applied,
        balance_after_cents=new_balance,
        reason=reason,
        conversion_id=conversion_id,
        wholesale_order_id=wholesale_order_id,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(tx)
    # Flush bumps version_id; a concurrent writer surfaces as StaleDataError here
    db.session.flush()

    return CreditPosting(
        partnership_id=partnership.id,
        requested_cents=amount_cents,
        applied_cents=applied,
        balance_cents=new_balance,
        transaction=tx,
    )


def post_credit(
    *,
    partnership_id: int,
    amount_cents: int,
    reason: str | None = None,
    conversion_id: int | None = None,
    wholesale_order_id: int | None = None,
    occurred_at=None,
) -> CreditPosting:
    """
    Post a signed amount to a partnership balance as one atomic unit.

    Positive amounts earn credit; negative amounts deduct, clamped to the
    available balance. Returns the applied amount and resulting balance.
    """
    def _op():
        posting = apply_credit(
            partnership_id=partnership_id,
            amount_cents=amount_cents,
            reason=reason,
            conversion_id=conversion_id,
            wholesale_order_id=wholesale_order_id,
            occurred_at=occurred_at,
        )
        db.session.commit()
        return posting

    return run_with_retry(_op)


def get_partnership(partnership_id: int) -> BrandPartnership:
    partnership = db.session.get(BrandPartnership, partnership_id)
    if partnership is None:
        raise PartnershipNotFoundError(f"Partnership {partnership_id} not found")
    return partnership


def find_partnership(store_id: int, brand_id: int) -> BrandPartnership | None:
    return db.session.query(BrandPartnership).filter_by(
        store_id=store_id,
        brand_id=brand_id,
    ).first()


def get_balance(partnership_id: int) -> int:
    return get_partnership(partnership_id).credit_balance_cents


def ledger_sum(partnership_id: int) -> int:
    """SUM of ledger rows. Verification only; never used to post."""
    total = db.session.query(
        func.coalesce(func.sum(CreditTransaction.amount_cents), 0)
    ).filter(CreditTransaction.partnership_id == partnership_id).scalar()
    return int(total or 0)


def verify_partnership_balance(partnership_id: int) -> dict:
    balance = get_balance(partnership_id)
    total = ledger_sum(partnership_id)
    return {
        "partnership_id": partnership_id,
        "balance_cents": balance,
        "ledger_sum_cents": total,
        "consistent": balance == total,
    }


def list_transactions(
    *,
    partnership_id: int | None = None,
    store_id: int | None = None,
    limit: int = 200,
) -> list[CreditTransaction]:
    q = CreditTransaction.query
    if partnership_id is not None:
        q = q.filter(CreditTransaction.partnership_id == partnership_id)
    if store_id is not None:
        q = q.filter(CreditTransaction.store_id == store_id)
    return (
        q.order_by(CreditTransaction.occurred_at.desc(), CreditTransaction.id.desc())
        .limit(limit)
        .all()
    )


def list_store_transactions(store_code: str, limit: int = 200) -> list[CreditTransaction]:
    store = db.session.query(Store).filter_by(store_code=store_code).first()
    if store is None:
        raise CreditLedgerError(f"Store {store_code} not found")
    return list_transactions(store_id=store.id, limit=limit)
