## routes.py
from __future__ import annotations

import io
import json
from datetime import datetime
from typing import Any

from flask import Blueprint, abort, current_app, jsonify, request, send_file

from reports_web.domain.models import Report, ReportRun, ReportRunPage, RunStatus
from reports_web.services.pager import clamp_page_request, get_run_page


def _safe_int(raw: str | None) -> int | None:
    raw = (raw or "").strip()
    return int(raw) if raw.isdigit() else None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _param(name: str) -> str:
    value = _body().get(name)
    if value is not None:
        if isinstance(value, (list, dict)):
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        return str(value).strip()
    return (request.form.get(name) or request.args.get(name) or "").strip()


def _fields_param() -> str:
    """fields arrive as "Id,Subject" in a form, or as a list in a JSON body."""
    value = _body().get("fields")
    if isinstance(value, list):
        return ",".join(f for f in value if isinstance(f, str))
    return _param("fields")


def _serialize_report(report: Report) -> dict[str, Any]:
    return {
        "id": report.id,
        "workspace_id": report.workspace_id,
        "name": report.name,
        "ready": report.ready,
        "last_run": _iso(report.last_run),
    }


def _serialize_run(run: ReportRun) -> dict[str, Any]:
    return {
        "id": run.id,
        "workspace_id": run.workspace_id,
        "report_id": run.report_id,
        "status": run.status.value,
        "started_at": _iso(run.started_at),
        "finished_at": _iso(run.finished_at),
        "row_count": run.row_count,
        "has_content": run.has_content,
        "content_type": run.content_type,
        "file_name": run.file_name,
    }


def _serialize_page(page: ReportRunPage) -> dict[str, Any]:
    return {
        "page": page.page,
        "take": page.take,
        "total_rows": page.total_rows,
        "total_pages": page.total_pages,
        "from_row": page.from_row,
        "to_row": page.to_row,
        "has_content": page.has_content,
        "headers": list(page.headers),
        "rows": [list(r) for r in page.rows],
    }


def create_blueprint(
    codec,
    run_service,
    backfill_service,
    *,
    default_take: int = 500,
    max_take: int = 5000,
    runs_take: int = 100,
) -> Blueprint:
    bp = Blueprint("web", __name__)

    def find_run_or_404(workspace_id: int, report_id: int, run_id: int) -> ReportRun:
        run = run_service.get_run(workspace_id, run_id)
        if run is None or run.report_id != report_id:
            abort(404)
        return run

    @bp.get("/workspaces/<int:workspace_id>/reports/sources")
    def sources(workspace_id: int):
        catalog = codec.available_sources()
        return jsonify({"sources": {name: list(fields) for name, fields in catalog.items()}})

    @bp.post("/workspaces/<int:workspace_id>/reports/definition")
    def build_definition(workspace_id: int):
        definition_json = codec.build(
            _param("source") or None,
            _fields_param(),
            _param("filters") or None,
            _param("order_by") or None,
        )
        d = codec.parse(definition_json)
        return jsonify(
            {
                "definition_json": definition_json,
                "source": d.source,
                "fields": list(d.fields),
                "filters_json": d.filters_json,
            }
        )

    @bp.post("/workspaces/<int:workspace_id>/reports/<int:report_id>/runs")
    def run_report(workspace_id: int, report_id: int):
        run = run_service.run_report(workspace_id, report_id)
        if run is None:
            abort(404)

        code = 200 if run.status is RunStatus.SUCCEEDED else 500
        current_app.logger.info("Run %s report=%s status=%s rows=%s", run.id, report_id, run.status.value, run.row_count)
        return jsonify({"run": _serialize_run(run)}), code

    @bp.get("/workspaces/<int:workspace_id>/reports/<int:report_id>/runs")
    def list_runs(workspace_id: int, report_id: int):
        take = _safe_int(request.args.get("take")) or runs_take
        report, runs = run_service.get_report_runs(workspace_id, report_id, take)
        if report is None:
            abort(404)
        return jsonify({"report": _serialize_report(report), "runs": [_serialize_run(r) for r in runs]})

    @bp.get("/workspaces/<int:workspace_id>/reports/<int:report_id>/runs/<int:run_id>")
    def view_run(workspace_id: int, report_id: int, run_id: int):
        run = find_run_or_404(workspace_id, report_id, run_id)
        page, take = clamp_page_request(
            _safe_int(request.args.get("page")),
            _safe_int(request.args.get("take")),
            run.row_count,
            default_take=default_take,
            max_take=max_take,
        )
        result = get_run_page(run, page, take)
        return jsonify({"run": _serialize_run(run), "page": _serialize_page(result)})

    @bp.get("/workspaces/<int:workspace_id>/reports/<int:report_id>/runs/<int:run_id>/download")
    def download(workspace_id: int, report_id: int, run_id: int):
        run = find_run_or_404(workspace_id, report_id, run_id)
        if not run.has_content:
            abort(404)

        return send_file(
            io.BytesIO(run.file_bytes),
            mimetype=run.content_type or "text/csv",
            as_attachment=True,
            download_name=run.file_name or f"run_{run.id}.csv",
        )

    @bp.post("/workspaces/<int:workspace_id>/reports/runs/backfill")
    def backfill(workspace_id: int):
        report_id = _safe_int(_param("report_id"))
        summary = backfill_service.backfill(workspace_id, report_id)
        current_app.logger.info(
            "Backfill workspace=%s scanned=%d updated=%d", workspace_id, summary.scanned, summary.updated
        )
        return jsonify(
            {
                "scanned": summary.scanned,
                "updated": summary.updated,
                "missing": list(summary.missing),
            }
        )

    return bp
