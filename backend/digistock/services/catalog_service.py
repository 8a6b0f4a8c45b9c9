# backend/digistock/services/catalog_service.py
"""
Catalog Service - digital products and platforms master data

Stock and credit balances are NOT catalog fields: a product starts with no
stock (purchases bring it in) and a platform's balance only moves through
the credit ledger. Patches that name those fields are rejected.
"""
from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..ids import new_id
from ..models import DigitalProduct, Platform
from .concurrency import begin_write, commit, lock_for_update, run_with_retry, storage_step

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category",
    "duration_type",
    "description",
    "min_stock_alert",
    "suggested_sell_price_cents",
    "platform_id",
    "platform_buying_price_cents",
    "is_active",
}

PLATFORM_MUTABLE_FIELDS = {
    "name",
    "description",
    "contact_name",
    "contact_email",
    "contact_phone",
    "low_balance_threshold_cents",
    "is_active",
}

LEDGER_OWNED_FIELDS = {"current_stock", "average_purchase_price_cents", "credit_balance_cents"}


def _apply_patch(obj, patch: dict, allowed: set[str]) -> None:
    for k, v in patch.items():
        if k in LEDGER_OWNED_FIELDS:
            raise ValidationError(f"{k} is maintained by the ledger and cannot be set directly")
        if k not in allowed:
            raise ValidationError(f"Field not allowed: {k}")
        setattr(obj, k, v)


def get_product(product_id: str, *, lock: bool = False, require_active: bool = False) -> DigitalProduct:
    query = db.session.query(DigitalProduct).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    if require_active and not product.is_active:
        raise ValidationError(f"Product {product.name} is inactive", details={"product_id": product_id})
    return product


def get_platform(platform_id: str, *, lock: bool = False, require_active: bool = False) -> Platform:
    query = db.session.query(Platform).filter_by(id=platform_id)
    if lock:
        query = lock_for_update(query)
    platform = query.first()
    if platform is None:
        raise NotFoundError(f"Platform {platform_id} not found", details={"platform_id": platform_id})
    if require_active and not platform.is_active:
        raise ValidationError(f"Platform is not active: {platform.name}", details={"platform_id": platform_id})
    return platform


def list_products(*, active_only: bool = False, platform_id: str | None = None) -> list[DigitalProduct]:
    query = db.session.query(DigitalProduct)
    if active_only:
        query = query.filter(DigitalProduct.is_active.is_(True))
    if platform_id:
        query = query.filter(DigitalProduct.platform_id == platform_id)
    return query.order_by(DigitalProduct.name.asc(), DigitalProduct.id.asc()).all()


def list_platforms(*, active_only: bool = False) -> list[Platform]:
    query = db.session.query(Platform)
    if active_only:
        query = query.filter(Platform.is_active.is_(True))
    return query.order_by(Platform.name.asc()).all()


def create_product(*, patch: dict) -> DigitalProduct:
    """Create a product from a validated patch. Stock starts at zero."""
    def _op():
        if patch.get("platform_id"):
            get_platform(patch["platform_id"])

        product = DigitalProduct(id=new_id("prod"), current_stock=0, average_purchase_price_cents=0)
        _apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
        with storage_step("persist product"):
            db.session.add(product)
            db.session.flush()
        commit()
        current_app.logger.info("Product %s created (%s)", product.id, product.name)
        return product

    return run_with_retry(_op)


def update_product(product_id: str, *, patch: dict) -> DigitalProduct:
    def _op():
        begin_write()
        product = get_product(product_id, lock=True)
        if patch.get("platform_id"):
            get_platform(patch["platform_id"])
        _apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
        commit()
        return product

    return run_with_retry(_op)


def create_platform(*, patch: dict, initial_credit_cents: int = 0, created_by: str = "system") -> Platform:
    """
    Create a platform. An opening balance is booked as a credit_added
    movement so the ledger trail starts from zero.
    """
    from .credit_service import apply_credit_change

    if initial_credit_cents < 0:
        raise ValidationError("initial_credit_cents cannot be negative")

    def _op():
        begin_write()
        name = patch.get("name")
        if name and db.session.query(Platform).filter_by(name=name).first():
            raise ValidationError(f"Platform name already exists: {name}")

        platform = Platform(
            id=new_id("plat"),
            credit_balance_cents=0,
            low_balance_threshold_cents=current_app.config.get("DEFAULT_LOW_BALANCE_THRESHOLD_CENTS", 0),
        )
        _apply_patch(platform, patch, PLATFORM_MUTABLE_FIELDS)
        with storage_step("persist platform"):
            db.session.add(platform)
            db.session.flush()

        if initial_credit_cents:
            apply_credit_change(
                platform,
                initial_credit_cents,
                "credit_added",
                None,
                description="opening balance",
                created_by=created_by,
            )

        commit()
        current_app.logger.info("Platform %s created (%s)", platform.id, platform.name)
        return platform

    return run_with_retry(_op)


def update_platform(platform_id: str, *, patch: dict) -> Platform:
    def _op():
        begin_write()
        platform = get_platform(platform_id, lock=True)
        name = patch.get("name")
        if name and name != platform.name and db.session.query(Platform).filter_by(name=name).first():
            raise ValidationError(f"Platform name already exists: {name}")
        _apply_patch(platform, patch, PLATFORM_MUTABLE_FIELDS)
        commit()
        return platform

    return run_with_retry(_op)
