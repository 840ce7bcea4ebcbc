from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Optional

from reports_web.domain.models import Report, ReportExecutionResult, ReportRun, RunStatus


# -----------------------------
# Test doubles
# -----------------------------
class FakeReportStore:
    def __init__(self, *reports: Report):
        self.reports = {(r.workspace_id, r.id): r for r in reports}
        self.updates: list[Report] = []

    def find(self, workspace_id: int, report_id: int) -> Optional[Report]:
        return self.reports.get((workspace_id, report_id))

    def update(self, report: Report) -> Optional[Report]:
        self.updates.append(report)
        self.reports[(report.workspace_id, report.id)] = report
        return report

    def list_schedulable(self) -> list[Report]:
        return [r for r in self.reports.values() if r.schedule_enabled and r.ready]


class FakeRunStore:
    """Records every write so tests can assert on the exact write sequence."""

    def __init__(self, *runs: ReportRun):
        self.runs: dict[int, ReportRun] = {r.id: r for r in runs}
        self.calls: list[tuple[Any, ...]] = []
        self._next_id = max(self.runs, default=0) + 1

    def create(self, run: ReportRun) -> ReportRun:
        created = replace(run, id=self._next_id)
        self._next_id += 1
        self.runs[created.id] = created
        self.calls.append(("create", created.id))
        return created

    def mark_running(self, run_id: int) -> bool:
        self.calls.append(("mark_running", run_id))
        self.runs[run_id] = replace(self.runs[run_id], status=RunStatus.RUNNING)
        return True

    def complete(
        self,
        run_id: int,
        status: RunStatus,
        row_count: int,
        file_path: Optional[str],
        file_bytes: Optional[bytes] = None,
        content_type: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> bool:
        self.calls.append(("complete", run_id, status))
        if self.runs[run_id].status.is_terminal:
            return False
        self.runs[run_id] = replace(
            self.runs[run_id],
            status=status,
            row_count=row_count,
            file_path=file_path,
            file_bytes=file_bytes,
            content_type=content_type or "",
            file_name=file_name or "",
            finished_at=datetime.now(timezone.utc),
        )
        return True

    def find(self, workspace_id: int, run_id: int) -> Optional[ReportRun]:
        run = self.runs.get(run_id)
        if run is None or run.workspace_id != workspace_id:
            return None
        return run

    def list_for_report(self, workspace_id: int, report_id: int, take: int = 50) -> list[ReportRun]:
        runs = [r for r in self.runs.values() if r.workspace_id == workspace_id and r.report_id == report_id]
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return runs[:take]

    def update_content(self, run_id: int, file_bytes: bytes, content_type: str, file_name: str) -> bool:
        self.calls.append(("update_content", run_id))
        self.runs[run_id] = replace(
            self.runs[run_id], file_bytes=file_bytes, content_type=content_type, file_name=file_name
        )
        return True

    def list_missing_content(
        self, workspace_id: int, report_id: Optional[int] = None, take: int = 10000
    ) -> list[ReportRun]:
        return [
            r for r in self.runs.values()
            if r.workspace_id == workspace_id
            and r.status is RunStatus.SUCCEEDED
            and not r.file_bytes
            and r.file_path
            and (report_id is None or r.report_id == report_id)
        ][:take]


class FakeSource:
    def __init__(self, *entities: Any):
        self.entities = list(entities)
        self.calls: list[int] = []

    def list(self, workspace_id: int) -> list[Any]:
        self.calls.append(workspace_id)
        return [e for e in self.entities if getattr(e, "workspace_id", workspace_id) == workspace_id]


class FakeExecutor:
    def __init__(self, result: Optional[ReportExecutionResult] = None, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: list[tuple[int, int]] = []

    def execute(self, workspace_id: int, report: Report, cancel_event=None) -> ReportExecutionResult:
        self.calls.append((workspace_id, report.id))
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


# -----------------------------
# Helpers
# -----------------------------
def make_report(report_id: int = 7, workspace_id: int = 1, **kwargs: Any) -> Report:
    kwargs.setdefault("name", "Open tickets")
    kwargs.setdefault("ready", True)
    kwargs.setdefault("definition_json", '{"source":"tickets","fields":["Id","Subject"],"filters":[]}')
    return Report(id=report_id, workspace_id=workspace_id, **kwargs)


def make_run(run_id: int = 1, workspace_id: int = 1, report_id: int = 7, **kwargs: Any) -> ReportRun:
    kwargs.setdefault("status", RunStatus.SUCCEEDED)
    kwargs.setdefault("started_at", datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc))
    return ReportRun(id=run_id, workspace_id=workspace_id, report_id=report_id, **kwargs)
