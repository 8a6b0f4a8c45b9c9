from flask import Blueprint, jsonify, request

from digistock.errors import LedgerError
from digistock.services import reporting_service
from . import error_response


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/platform-profitability")
def platform_profitability_report():
    try:
        report = reporting_service.platform_profitability(
            platform_id=request.args.get("platform_id"),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except LedgerError as exc:
        return error_response(exc)


@reports_bp.get("/sales-summary")
def sales_summary_report():
    try:
        report = reporting_service.sales_summary(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except LedgerError as exc:
        return error_response(exc)


@reports_bp.get("/credit-utilization")
def credit_utilization_report():
    """
    Query params:
    - platform_id: limit to one platform
    - start, end: ISO-8601 bounds on movement time (inclusive)
    """
    try:
        report = reporting_service.credit_utilization(
            platform_id=request.args.get("platform_id"),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except LedgerError as exc:
        return error_response(exc)


@reports_bp.get("/sales-profit")
def sales_profit_report():
    """
    Query params:
    - platform_id, product_id, category, payment_type: filters
    - group_by: platform | product | category | month (default: one total group)
    - start, end: ISO-8601 bounds on sale date (inclusive)
    """
    try:
        report = reporting_service.sales_profit_report(
            platform_id=request.args.get("platform_id"),
            product_id=request.args.get("product_id"),
            category=request.args.get("category"),
            payment_type=request.args.get("payment_type"),
            start=request.args.get("start"),
            end=request.args.get("end"),
            group_by=request.args.get("group_by"),
        )
        return jsonify(report), 200
    except LedgerError as exc:
        return error_response(exc)
