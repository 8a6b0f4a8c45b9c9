from __future__ import annotations

from ..extensions import db
from ..ids import new_id
from digistock.time_utils import to_utc_z


STOCK_MOVEMENT_TYPES = ("purchase", "sale", "sale_void")
CREDIT_MOVEMENT_TYPES = ("credit_added", "credit_deducted", "sale_deduction", "sale_refund")


class StockMovement(db.Model):
    """
    Append-only audit trail of product stock changes.

    previous_stock/new_stock are the product's stock immediately before and
    after the movement (new_stock = previous_stock + quantity).
    reference is the id of the sale or purchase that triggered it.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("new_stock >= 0", name="ck_stock_movements_new_stock_non_negative"),
        db.CheckConstraint("new_stock = previous_stock + quantity", name="ck_stock_movements_delta"),
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        db.UniqueConstraint("product_id", "sequence", name="uq_stock_movements_product_sequence"),
    )

    id = db.Column(db.String(64), primary_key=True, default=lambda: new_id("smov"))
    product_id = db.Column(db.String(64), db.ForeignKey("digital_products.id"), nullable=False, index=True)
    # Per-product position in the trail; the highest one is the current stock.
    sequence = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    reference = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("DigitalProduct", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sequence": self.sequence,
            "type": self.type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reference": self.reference,
            "notes": self.notes,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class PlatformCreditMovement(db.Model):
    """
    Append-only ledger of platform credit balance changes.

    amount_cents is signed (deposits positive, deductions negative) and
    new_balance_cents = previous_balance_cents + amount_cents, never below 0.
    """
    __tablename__ = "platform_credit_movements"
    __table_args__ = (
        db.CheckConstraint("new_balance_cents >= 0", name="ck_credit_movements_balance_non_negative"),
        db.CheckConstraint(
            "new_balance_cents = previous_balance_cents + amount_cents",
            name="ck_credit_movements_delta",
        ),
        db.Index("ix_credit_movements_platform_occurred", "platform_id", "occurred_at"),
        db.UniqueConstraint("platform_id", "sequence", name="uq_credit_movements_platform_sequence"),
    )

    id = db.Column(db.String(64), primary_key=True, default=lambda: new_id("cmov"))
    platform_id = db.Column(db.String(64), db.ForeignKey("platforms.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    previous_balance_cents = db.Column(db.Integer, nullable=False)
    new_balance_cents = db.Column(db.Integer, nullable=False)

    reference = db.Column(db.String(64), nullable=True, index=True)
    description = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(64), nullable=False, default="system")

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    platform = db.relationship("Platform", backref=db.backref("credit_movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "platform_id": self.platform_id,
            "sequence": self.sequence,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "previous_balance_cents": self.previous_balance_cents,
            "new_balance_cents": self.new_balance_cents,
            "reference": self.reference,
            "description": self.description,
            "created_by": self.created_by,
            "occurred_at": to_utc_z(self.occurred_at),
        }
