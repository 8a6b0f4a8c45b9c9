from __future__ import annotations

from ..extensions import db
from ..ids import new_id
from digistock.time_utils import to_utc_z


PRODUCT_CATEGORIES = ("iptv", "digital-account", "digitali")
DURATION_TYPES = ("1month", "3months", "6months", "12months", "custom")


class Platform(db.Model):
    """
    External digital-goods supplier account with a prepaid credit balance.

    credit_balance_cents is owned by the credit ledger
    (services/credit_service.py). Every change to it appends a
    PlatformCreditMovement in the same DB transaction, so the balance always
    equals the new_balance_cents of the latest movement.
    """
    __tablename__ = "platforms"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_platforms_name"),
        db.CheckConstraint("credit_balance_cents >= 0", name="ck_platforms_balance_non_negative"),
        db.Index("ix_platforms_active", "is_active"),
    )

    id = db.Column(db.String(64), primary_key=True, default=lambda: new_id("plat"))
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    contact_name = db.Column(db.String(255), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(64), nullable=True)

    credit_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    low_balance_threshold_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Platform id={self.id!r} name={self.name!r} balance={self.credit_balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "credit_balance_cents": self.credit_balance_cents,
            "low_balance_threshold_cents": self.low_balance_threshold_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DigitalProduct(db.Model):
    """
    Digital product master data (IPTV subscriptions, digital accounts, ...).

    STOCK: current_stock is a stored counter, but it is only ever changed by
    the stock movement engine (services/stock_service.py), which appends a
    StockMovement with the before/after snapshot in the same transaction.

    COST: average_purchase_price_cents is the weighted average of purchases;
    platform_buying_price_cents is the unit cost drawn from the owning
    platform's credit when the product is sold.
    """
    __tablename__ = "digital_products"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active", "is_active"),
    )

    id = db.Column(db.String(64), primary_key=True, default=lambda: new_id("prod"))
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=False, default="digital-account")
    duration_type = db.Column(db.String(16), nullable=False, default="1month")
    description = db.Column(db.Text, nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock_alert = db.Column(db.Integer, nullable=False, default=0)

    average_purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    suggested_sell_price_cents = db.Column(db.Integer, nullable=False, default=0)

    platform_id = db.Column(db.String(64), db.ForeignKey("platforms.id"), nullable=True, index=True)
    platform_buying_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    platform = db.relationship("Platform", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock_alert

    @property
    def profit_margin_percent(self) -> float | None:
        cost = self.platform_buying_price_cents or self.average_purchase_price_cents
        if not cost:
            return None
        return round((self.suggested_sell_price_cents - cost) * 100 / cost, 2)

    def __repr__(self) -> str:
        return f"<DigitalProduct id={self.id!r} name={self.name!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "duration_type": self.duration_type,
            "description": self.description,
            "current_stock": self.current_stock,
            "min_stock_alert": self.min_stock_alert,
            "is_low_stock": self.is_low_stock,
            "average_purchase_price_cents": self.average_purchase_price_cents,
            "suggested_sell_price_cents": self.suggested_sell_price_cents,
            "platform_id": self.platform_id,
            "platform_buying_price_cents": self.platform_buying_price_cents,
            "profit_margin_percent": self.profit_margin_percent,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
