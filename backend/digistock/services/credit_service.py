# Overview: Platform credit ledger; the only code path that changes a platform's balance.

"""
Platform Credit Ledger

WHY: Platforms are prepaid supplier accounts. Selling a platform-backed
product draws down the platform's credit, topping up adds to it. The balance
must never go negative and every change must be traceable.

DESIGN PRINCIPLES:
- Platform.credit_balance_cents is changed only by apply_credit_change()
- Every change appends a PlatformCreditMovement in the same DB transaction
  (new_balance = previous_balance + amount, amount signed)
- A deduction that would take the balance below zero fails with
  InsufficientCreditError before anything is written
- Public operations lock the platform row for the whole read-then-write
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..errors import InsufficientCreditError, ValidationError
from ..extensions import db
from ..ids import new_id
from ..models import Platform, PlatformCreditMovement, CREDIT_MOVEMENT_TYPES
from digistock.time_utils import now
from .catalog_service import get_platform
from .concurrency import begin_write, commit, run_with_retry, storage_step


# =============================================================================
# MOVEMENT TYPES (CONSTANTS)
# =============================================================================

CREDIT_ADDED = "credit_added"
CREDIT_DEDUCTED = "credit_deducted"
SALE_DEDUCTION = "sale_deduction"
SALE_REFUND = "sale_refund"

INCREASING_TYPES = {CREDIT_ADDED, SALE_REFUND}


# =============================================================================
# BALANCE STATUS (CONSTANTS)
# =============================================================================

BALANCE_EMPTY = "empty"
BALANCE_LOW = "low"
BALANCE_NORMAL = "normal"


# =============================================================================
# LEDGER CORE
# =============================================================================

def _next_sequence(platform_id: str) -> int:
    current = db.session.query(
        func.coalesce(func.max(PlatformCreditMovement.sequence), 0)
    ).filter(PlatformCreditMovement.platform_id == platform_id).scalar()
    return int(current or 0) + 1


def validate_platform_credits(platform: Platform, required_cents: int) -> None:
    """
    Check a platform can cover a deduction of required_cents.

    Raises:
        InsufficientCreditError: with the platform name, current balance,
            required amount and shortfall
    """
    if required_cents > platform.credit_balance_cents:
        raise InsufficientCreditError(
            platform.id,
            platform.name,
            balance_cents=platform.credit_balance_cents,
            required_cents=required_cents,
        )


def apply_credit_change(
    platform: Platform,
    signed_amount_cents: int,
    movement_type: str,
    reference: str | None,
    *,
    description: str | None = None,
    created_by: str = "system",
    occurred_at: datetime | None = None,
) -> PlatformCreditMovement:
    """
    Apply a signed credit delta to a platform and record the movement.

    The caller owns the transaction and must hold the platform lock. The
    platform is updated in place together with the movement row.

    Raises:
        ValidationError: unknown type, zero amount, or sign not matching type
        InsufficientCreditError: balance + signed_amount_cents < 0
    """
    if movement_type not in CREDIT_MOVEMENT_TYPES:
        raise ValidationError(f"Invalid credit movement type: {movement_type}")
    if isinstance(signed_amount_cents, bool) or not isinstance(signed_amount_cents, int):
        raise ValidationError("amount_cents must be an integer")
    if signed_amount_cents == 0:
        raise ValidationError("Credit amount cannot be zero")
    if (signed_amount_cents > 0) != (movement_type in INCREASING_TYPES):
        raise ValidationError(f"{movement_type} movement has the wrong sign: {signed_amount_cents}")

    if signed_amount_cents < 0:
        validate_platform_credits(platform, -signed_amount_cents)

    previous_balance = platform.credit_balance_cents
    new_balance = previous_balance + signed_amount_cents

    with storage_step("credit movement" if signed_amount_cents > 0 else "credit deduction"):
        movement = PlatformCreditMovement(
            id=new_id("cmov"),
            platform_id=platform.id,
            sequence=_next_sequence(platform.id),
            type=movement_type,
            amount_cents=signed_amount_cents,
            previous_balance_cents=previous_balance,
            new_balance_cents=new_balance,
            reference=reference,
            description=description,
            created_by=created_by,
            occurred_at=occurred_at or now(),
        )
        platform.credit_balance_cents = new_balance
        db.session.add(movement)
        db.session.flush()
    return movement


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def add_platform_credit(
    platform_id: str,
    amount_cents: int,
    *,
    description: str | None = None,
    reference: str | None = None,
    created_by: str = "system",
) -> PlatformCreditMovement:
    """
    Top up a platform's prepaid credit.

    Raises:
        ValidationError: amount not positive, or platform inactive
        NotFoundError: platform does not exist
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("Amount must be positive")

    def _op():
        begin_write()
        platform = get_platform(platform_id, lock=True, require_active=True)
        movement = apply_credit_change(
            platform,
            amount_cents,
            CREDIT_ADDED,
            reference,
            description=description,
            created_by=created_by,
        )
        commit()
        current_app.logger.info(
            "Credit added to platform %s: %d cents (balance %d)",
            platform.id, amount_cents, movement.new_balance_cents,
        )
        return movement

    return run_with_retry(_op)


def adjust_platform_credit(
    platform_id: str,
    adjustment_cents: int,
    *,
    reason: str,
    created_by: str = "system",
) -> PlatformCreditMovement:
    """
    Manual balance correction, positive or negative.

    A negative adjustment is still bounded by the balance: the ledger never
    goes below zero.
    """
    if isinstance(adjustment_cents, bool) or not isinstance(adjustment_cents, int):
        raise ValidationError("adjustment_cents must be an integer")
    if adjustment_cents == 0:
        raise ValidationError("Adjustment amount cannot be zero")
    if not reason or not reason.strip():
        raise ValidationError("reason is required")

    movement_type = CREDIT_ADDED if adjustment_cents > 0 else CREDIT_DEDUCTED

    def _op():
        begin_write()
        platform = get_platform(platform_id, lock=True)
        try:
            movement = apply_credit_change(
                platform,
                adjustment_cents,
                movement_type,
                None,
                description=f"adjustment: {reason.strip()}",
                created_by=created_by,
            )
        except InsufficientCreditError:
            current_app.logger.warning(
                "Rejected credit adjustment of %d cents on platform %s", adjustment_cents, platform_id
            )
            raise
        commit()
        current_app.logger.info(
            "Credit adjusted on platform %s: %d cents (balance %d)",
            platform.id, adjustment_cents, movement.new_balance_cents,
        )
        return movement

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def balance_status(balance_cents: int, threshold_cents: int) -> str:
    if balance_cents <= 0:
        return BALANCE_EMPTY
    if balance_cents <= threshold_cents:
        return BALANCE_LOW
    return BALANCE_NORMAL


def get_balance(platform_id: str) -> dict:
    platform = get_platform(platform_id)
    balance = platform.credit_balance_cents
    threshold = platform.low_balance_threshold_cents
    return {
        "platform_id": platform.id,
        "platform_name": platform.name,
        "current_balance_cents": balance,
        "low_balance_threshold_cents": threshold,
        "is_low_balance": balance <= threshold,
        "is_active": platform.is_active,
        "balance_status": balance_status(balance, threshold),
    }


def list_credit_movements(
    platform_id: str,
    *,
    movement_type: str | None = None,
    reference: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[PlatformCreditMovement]:
    """Credit movements for a platform, newest first. Date bounds are inclusive."""
    get_platform(platform_id)

    q = db.session.query(PlatformCreditMovement).filter_by(platform_id=platform_id)
    if movement_type:
        q = q.filter(PlatformCreditMovement.type == movement_type)
    if reference:
        q = q.filter(PlatformCreditMovement.reference == reference)
    if start is not None:
        q = q.filter(PlatformCreditMovement.occurred_at >= start)
    if end is not None:
        q = q.filter(PlatformCreditMovement.occurred_at <= end)

    return (
        q.order_by(PlatformCreditMovement.sequence.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def platforms_with_low_balance() -> list[dict]:
    platforms = (
        db.session.query(Platform)
        .filter(
            Platform.is_active.is_(True),
            Platform.credit_balance_cents <= Platform.low_balance_threshold_cents,
        )
        .order_by(Platform.credit_balance_cents.asc(), Platform.name.asc())
        .all()
    )
    return [
        {
            "platform_id": p.id,
            "platform_name": p.name,
            "current_balance_cents": p.credit_balance_cents,
            "low_balance_threshold_cents": p.low_balance_threshold_cents,
            "contact_email": p.contact_email,
            "deficit_cents": p.low_balance_threshold_cents - p.credit_balance_cents,
        }
        for p in platforms
    ]


def verify_credit_trail(platform_id: str) -> list[str]:
    """Check a platform's balance against its credit movement trail."""
    platform = get_platform(platform_id)
    movements = (
        db.session.query(PlatformCreditMovement)
        .filter_by(platform_id=platform_id)
        .order_by(PlatformCreditMovement.sequence.asc())
        .all()
    )

    problems = []
    expected_previous = 0
    for mv in movements:
        if mv.previous_balance_cents != expected_previous:
            problems.append(
                f"movement {mv.id}: previous_balance {mv.previous_balance_cents} != {expected_previous}"
            )
        if mv.new_balance_cents < 0:
            problems.append(f"movement {mv.id}: negative balance {mv.new_balance_cents}")
        expected_previous = mv.new_balance_cents

    if platform.credit_balance_cents != expected_previous:
        problems.append(
            f"platform {platform.id}: balance {platform.credit_balance_cents} != trail {expected_previous}"
        )
    return problems
