from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _report(builder, failure: str, **kwargs):
    try:
        return jsonify(builder(**kwargs)), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception(failure)
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/summary")
@require_auth
def sales_summary_report():
    return _report(reporting_service.sales_summary, "Failed to build sales summary")


@reports_bp.get("/trending")
@require_auth
def trending_items_report():
    return _report(
        lambda: {"items": reporting_service.trending_items(), "window_days": reporting_service.TREND_WINDOW_DAYS},
        "Failed to build trending items",
    )


@reports_bp.get("/materials")
@require_auth
def material_trends_report():
    return _report(lambda: {"items": reporting_service.material_trends()}, "Failed to build material trends")


@reports_bp.get("/categories")
@require_auth
def category_trends_report():
    return _report(lambda: {"items": reporting_service.category_trends()}, "Failed to build category trends")


@reports_bp.get("/sources")
@require_auth
def source_trends_report():
    return _report(lambda: {"items": reporting_service.source_trends()}, "Failed to build source trends")


@reports_bp.get("/slow-moving")
@require_auth
def slow_moving_report():
    return _report(
        lambda: {
            "items": reporting_service.slow_moving_items(),
            "threshold_days": reporting_service.SLOW_MOVING_THRESHOLD_DAYS,
        },
        "Failed to build slow-moving items",
    )


@reports_bp.get("/balance-sheet")
@require_auth
def balance_sheet_report():
    return _report(
        reporting_service.balance_sheet,
        "Failed to build balance sheet",
        as_of=request.args.get("as_of"),
    )


@reports_bp.get("/profit-loss")
@require_auth
def profit_loss_report():
    return _report(
        reporting_service.profit_and_loss,
        "Failed to build profit and loss",
        start=request.args.get("start"),
        end=request.args.get("end"),
    )
