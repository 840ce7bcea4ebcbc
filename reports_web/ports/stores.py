from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from reports_web.domain.models import Report, ReportRun, RunStatus


class EntitySource(Protocol):
    """Supplies every entity of one collection for a workspace."""
    def list(self, workspace_id: int) -> Sequence[Any]:
        ...


class ReportStore(Protocol):
    def find(self, workspace_id: int, report_id: int) -> Optional[Report]:
        ...

    def update(self, report: Report) -> Optional[Report]:
        ...

    def list_schedulable(self) -> list[Report]:
        ...


class ReportRunStore(Protocol):
    def create(self, run: ReportRun) -> ReportRun:
        ...

    def mark_running(self, run_id: int) -> bool:
        ...

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
        ...

    def find(self, workspace_id: int, run_id: int) -> Optional[ReportRun]:
        ...

    def list_for_report(self, workspace_id: int, report_id: int, take: int = 50) -> list[ReportRun]:
        ...

    def update_content(self, run_id: int, file_bytes: bytes, content_type: str, file_name: str) -> bool:
        ...

    def list_missing_content(
        self, workspace_id: int, report_id: Optional[int] = None, take: int = 10000
    ) -> list[ReportRun]:
        ...
