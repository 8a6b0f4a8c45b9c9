# Overview: Flask API routes for sales and their payments; parses input and returns JSON responses.

"""
Sales API Routes

DESIGN:
- Recording a sale moves stock, platform credit and payments in one transaction
- Recorded sales are edited only in their descriptive fields
- Cancelling a sale is a void, which books inverse stock/credit movements
- Payments are recorded in installments against the remaining balance
"""

from flask import Blueprint, jsonify, request

from ..errors import LedgerError, ValidationError
from ..services import payment_service, sales_service
from ..validation import RecordPaymentRequest, RecordSaleRequest, UpdateSaleRequest
from . import error_response, internal_error


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


# =============================================================================
# SALE RECORDING
# =============================================================================

@sales_bp.post("")
def record_sale_route():
    """
    Record a sale.

    Request body:
    {
        "product_id": "prod-...",
        "quantity": 3,
        "unit_price_cents": 2500,
        "platform_id": "plat-...",              (optional, defaults to the product's)
        "platform_buying_price_cents": 1500,    (optional, defaults to the product's)
        "payment_status": "paid",               (paid | pending | partial)
        "paid_amount_cents": 1000,              (partial only)
        "payment_type": "one-time",             (one-time | recurring)
        "subscription_duration_months": 3,      (recurring only)
        "payment_method": "cash",
        "customer_name": "...", "customer_phone": "...", "notes": "...",
        "sale_date": "2025-01-31T10:00:00Z"     (optional)
    }

    Returns:
        201: Sale recorded
        400: Invalid input or inactive product/platform
        404: Product or platform not found
        409: Insufficient stock or platform credit
    """
    try:
        req = RecordSaleRequest.from_payload(request.get_json(silent=True))
        sale = sales_service.record_sale(req)
        return jsonify(sale.to_dict()), 201
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to record sale")


@sales_bp.get("")
def list_sales_route():
    """
    Query params:
    - product_id, platform_id, payment_status
    - include_voided: true/false (default true)
    - limit (default 100)
    """
    sales = sales_service.list_sales(
        product_id=request.args.get("product_id"),
        platform_id=request.args.get("platform_id"),
        payment_status=request.args.get("payment_status"),
        include_voided=request.args.get("include_voided", "true").lower() == "true",
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"items": [s.to_dict(include_payments=False) for s in sales]}), 200


@sales_bp.get("/expiring")
def expiring_route():
    """Recurring sales whose subscription ends within ?days= (default 7)."""
    try:
        days = request.args.get("days", 7, type=int)
        sales = sales_service.expiring_subscriptions(days)
        return jsonify({"items": [s.to_dict(include_payments=False) for s in sales]}), 200
    except LedgerError as exc:
        return error_response(exc)


@sales_bp.get("/<sale_id>")
def get_sale_route(sale_id: str):
    try:
        return jsonify(sales_service.get_sale(sale_id).to_dict()), 200
    except LedgerError as exc:
        return error_response(exc)


@sales_bp.patch("/<sale_id>")
def update_sale_route(sale_id: str):
    try:
        req = UpdateSaleRequest.from_payload(request.get_json(silent=True))
        sale = sales_service.update_sale(sale_id, req)
        return jsonify(sale.to_dict()), 200
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to update sale")


@sales_bp.post("/<sale_id>/void")
def void_sale_route(sale_id: str):
    """Request body: {"reason": "customer cancelled"}"""
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.void_sale(sale_id, reason=str(data.get("reason") or ""))
        return jsonify(sale.to_dict()), 200
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to void sale")


# =============================================================================
# PAYMENTS
# =============================================================================

@sales_bp.post("/<sale_id>/payments")
def record_payment_route(sale_id: str):
    """
    Request body:
    {
        "amount_cents": 4000,
        "paid_at": "2025-02-01T09:00:00Z",   (optional)
        "method": "baridimob",               (optional, defaults to the sale's)
        "notes": "second installment"        (optional)
    }
    """
    try:
        req = RecordPaymentRequest.from_payload(request.get_json(silent=True))
        payment_service.record_payment(
            sale_id,
            req.amount_cents,
            paid_at=req.paid_at,
            method=req.method,
            notes=req.notes,
        )
        return jsonify(payment_service.get_payment_summary(sale_id)), 201
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to record payment")


@sales_bp.get("/<sale_id>/payments")
def payment_summary_route(sale_id: str):
    try:
        return jsonify(payment_service.get_payment_summary(sale_id)), 200
    except LedgerError as exc:
        return error_response(exc)


@sales_bp.post("/<sale_id>/mark-paid")
def mark_paid_route(sale_id: str):
    try:
        payment_service.mark_fully_paid(sale_id)
        return jsonify(payment_service.get_payment_summary(sale_id)), 200
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to mark sale paid")


@sales_bp.post("/<sale_id>/reset-payments")
def reset_payments_route(sale_id: str):
    data = request.get_json(silent=True) or {}
    try:
        if data.get("confirm") is not True:
            raise ValidationError("Resetting payments deletes the payment history; send {\"confirm\": true}")
        payment_service.reset_to_pending(sale_id)
        return jsonify(payment_service.get_payment_summary(sale_id)), 200
    except LedgerError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to reset payments")
