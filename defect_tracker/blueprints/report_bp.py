"""
Report Blueprint — dashboards and exports.

    GET /api/v1/reports/stats              — totals, by status / priority / assignee
    GET /api/v1/reports/trends             — created vs resolved per day|week|month (default week)
    GET /api/v1/reports/team-performance   — per-assignee workload and resolution time
    GET /api/v1/reports/export/csv         — filtered defect list as CSV (UTF-8 BOM)
    GET /api/v1/reports/export/excel       — filtered defect list as .xlsx

Common query params: project_id, start_date, end_date (YYYY-MM-DD).
Exports also accept the defect list filters and sort params.
"""

from datetime import UTC, datetime

from flask import Blueprint, Response, jsonify, request, send_file

from defect_tracker.blueprints.defect_bp import defect_filters
from defect_tracker.core.exceptions import ValidationError
from defect_tracker.middleware.permission_required import require_role
from defect_tracker.services import export_service, report_service
from defect_tracker.services.defect_service import build_defect_query
from defect_tracker.utils.helpers import parse_date_input, parse_int

report_bp = Blueprint("report", __name__, url_prefix="/api/v1/reports")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _project_id_arg():
    raw = request.args.get("project_id")
    if raw in (None, ""):
        return None
    project_id = parse_int(raw)
    if project_id is None:
        raise ValidationError("project_id must be an integer", details={"project_id": "invalid"})
    return project_id


def _scope_args():
    return {
        "project_id": _project_id_arg(),
        "start_date": parse_date_input(request.args.get("start_date"), field="start_date"),
        "end_date": parse_date_input(request.args.get("end_date"), field="end_date"),
    }


def _export_query():
    return build_defect_query(
        defect_filters(),
        sort_by=request.args.get("sort_by", "created_at"),
        sort_order=request.args.get("sort_order", "desc"),
    )


def _export_name(ext):
    return f"defects_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S')}.{ext}"


@report_bp.route("/stats", methods=["GET"])
@require_role("report.view")
def stats():
    return jsonify(report_service.defect_stats(**_scope_args()))


@report_bp.route("/trends", methods=["GET"])
@require_role("report.view")
def trends():
    items = report_service.defect_trends(
        period=request.args.get("period", "week"), **_scope_args(),
    )
    return jsonify({"items": items})


@report_bp.route("/team-performance", methods=["GET"])
@require_role("report.view")
def team_performance():
    return jsonify({"items": report_service.team_performance(**_scope_args())})


@report_bp.route("/export/csv", methods=["GET"])
@require_role("report.view")
def export_csv():
    content = export_service.export_defects_csv(_export_query().all())
    return Response(
        content.encode("utf-8"),
        mimetype="text/csv",
        headers={
            "Content-Type": "text/csv; charset=utf-8",
            "Content-Disposition": f'attachment; filename="{_export_name("csv")}"',
        },
    )


@report_bp.route("/export/excel", methods=["GET"])
@require_role("report.view")
def export_excel():
    buf = export_service.export_defects_xlsx(_export_query().all())
    return send_file(
        buf,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=_export_name("xlsx"),
    )
