from flask import Blueprint, current_app, request

from kasir.errors import PosError, http_status_for
from kasir.services import reporting_service
from kasir.validation import ValidationError, coerce_datetime


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
def sales_report():
    period = request.args.get("period", "daily")

    try:
        start_date = coerce_datetime("start_date", request.args.get("start_date"))
        end_date = coerce_datetime("end_date", request.args.get("end_date"))
    except ValidationError as exc:
        return {"error": str(exc)}, 400

    try:
        report = reporting_service.sales_report(
            period=period,
            start_date=start_date,
            end_date=end_date,
        )
        return report, 200
    except PosError as exc:
        return exc.to_dict(), http_status_for(exc)


@reports_bp.get("/dashboard")
def dashboard():
    stats = reporting_service.dashboard_stats(
        low_stock_threshold=current_app.config["LOW_STOCK_THRESHOLD"],
        top_limit=current_app.config["TOP_SELLING_LIMIT"],
    )
    return stats, 200
