from __future__ import annotations

from ..extensions import db
from ..ids import new_id
from digistock.time_utils import to_utc_z


PAYMENT_STATUSES = ("paid", "pending", "partial")
PAYMENT_METHODS = ("cash", "transfer", "baridimob", "other")
PAYMENT_TYPES = ("one-time", "recurring")
SALE_STATUSES = ("active", "voided")


class StockSale(db.Model):
    """
    Sale of a digital product, optionally drawn from a platform's credit.

    Amounts are fixed at creation: total_price_cents = quantity * unit price
    and profit_cents = total - unit cost * quantity, where the unit cost is
    the platform buying price when one applies, else the product's average
    purchase price at the time of sale.

    PAYMENT: paid_amount_cents is the sum of the payment records and
    paid_amount_cents + remaining_amount_cents == total_price_cents. The
    payment status is derived from those two figures (payment_service).
    """
    __tablename__ = "stock_sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        db.CheckConstraint("paid_amount_cents >= 0", name="ck_sales_paid_non_negative"),
        db.CheckConstraint("remaining_amount_cents >= 0", name="ck_sales_remaining_non_negative"),
        db.Index("ix_sales_product_date", "product_id", "sale_date"),
        db.Index("ix_sales_platform_date", "platform_id", "sale_date"),
    )

    id = db.Column(db.String(64), primary_key=True, default=lambda: new_id("sale"))
    product_id = db.Column(db.String(64), db.ForeignKey("digital_products.id"), nullable=False, index=True)
    platform_id = db.Column(db.String(64), db.ForeignKey("platforms.id"), nullable=True, index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    platform_buying_price_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_cents = db.Column(db.Integer, nullable=False)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False)

    payment_type = db.Column(db.String(16), nullable=False, default="one-time")
    subscription_duration_months = db.Column(db.Integer, nullable=True)
    subscription_start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    subscription_end_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)

    # Void audit trail
    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("DigitalProduct", backref=db.backref("sales", lazy=True))
    platform = db.relationship("Platform", backref=db.backref("sales", lazy=True))
    payments = db.relationship(
        "PaymentRecord",
        back_populates="sale",
        order_by="PaymentRecord.sequence",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_payments: bool = True) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "platform_id": self.platform_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "platform_buying_price_cents": self.platform_buying_price_cents,
            "profit_cents": self.profit_cents,
            "sale_date": to_utc_z(self.sale_date),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "paid_amount_cents": self.paid_amount_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "payment_type": self.payment_type,
            "subscription_duration_months": self.subscription_duration_months,
            "subscription_start_date": to_utc_z(self.subscription_start_date),
            "subscription_end_date": to_utc_z(self.subscription_end_date),
            "notes": self.notes,
            "status": self.status,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_payments:
            data["payment_history"] = [p.to_dict() for p in self.payments]
        return data


class PaymentRecord(db.Model):
    """One installment toward a sale's total price."""
    __tablename__ = "payment_records"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payment_records_amount_positive"),
        db.UniqueConstraint("sale_id", "sequence", name="uq_payment_records_sale_sequence"),
    )

    id = db.Column(db.String(64), primary_key=True, default=lambda: new_id("pay"))
    sale_id = db.Column(db.String(64), db.ForeignKey("stock_sales.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    amount_cents = db.Column(db.Integer, nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    method = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("StockSale", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sequence": self.sequence,
            "amount_cents": self.amount_cents,
            "paid_at": to_utc_z(self.paid_at),
            "method": self.method,
            "notes": self.notes,
        }


class StockPurchase(db.Model):
    """
    Restock of a digital product from a supplier.

    Quantity and cost are immutable once recorded; only the supplier,
    invoice and payment fields may be edited afterwards.
    """
    __tablename__ = "stock_purchases"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchases_quantity_positive"),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_purchases_unit_cost_non_negative"),
        db.Index("ix_purchases_product_date", "product_id", "purchase_date"),
    )

    id = db.Column(db.String(64), primary_key=True, default=lambda: new_id("pur"))
    product_id = db.Column(db.String(64), db.ForeignKey("digital_products.id"), nullable=False, index=True)

    supplier = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    total_cost_cents = db.Column(db.Integer, nullable=False)

    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    payment_status = db.Column(db.String(16), nullable=False, default="paid")
    invoice_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("DigitalProduct", backref=db.backref("purchases", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "supplier": self.supplier,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "purchase_date": to_utc_z(self.purchase_date),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "invoice_number": self.invoice_number,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
