from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Union

from reports_web.domain.models import Report, ReportExecutionResult, ReportRun, RunStatus
from reports_web.ports.stores import ReportRunStore, ReportStore

logger = logging.getLogger(__name__)


class ReportExecutor(Protocol):
    def execute(
        self,
        workspace_id: int,
        report: Report,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReportExecutionResult:
        ...


@dataclass(frozen=True)
class ExecutionSucceeded:
    result: ReportExecutionResult


@dataclass(frozen=True)
class ExecutionFailed:
    error: BaseException


ExecutionOutcome = Union[ExecutionSucceeded, ExecutionFailed]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReportRunService:
    """
    Service layer: owns the Pending -> Running -> Succeeded|Failed lifecycle of a run.
    Execution errors never leave run_report(); they become a Failed run.
    """
    report_store: ReportStore
    run_store: ReportRunStore
    executor: ReportExecutor
    clock: Callable[[], datetime] = _utcnow

    def get_report_runs(
        self, workspace_id: int, report_id: int, take: int = 100
    ) -> tuple[Optional[Report], list[ReportRun]]:
        report = self.report_store.find(workspace_id, report_id)
        if report is None:
            return None, []
        return report, list(self.run_store.list_for_report(workspace_id, report_id, take))

    def get_run(self, workspace_id: int, run_id: int) -> Optional[ReportRun]:
        return self.run_store.find(workspace_id, run_id)

    def _execute_isolated(
        self,
        workspace_id: int,
        report: Report,
        cancel_event: Optional[threading.Event],
    ) -> ExecutionOutcome:
        try:
            return ExecutionSucceeded(self.executor.execute(workspace_id, report, cancel_event))
        except Exception as e:
            return ExecutionFailed(e)

    def run_report(
        self,
        workspace_id: int,
        report_id: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[ReportRun]:
        report = self.report_store.find(workspace_id, report_id)
        if report is None:
            return None

        run = self.run_store.create(
            ReportRun(
                id=0,
                workspace_id=workspace_id,
                report_id=report.id,
                status=RunStatus.PENDING,
                started_at=self.clock(),
            )
        )
        self.run_store.mark_running(run.id)

        outcome = self._execute_isolated(workspace_id, report, cancel_event)

        if isinstance(outcome, ExecutionSucceeded):
            res = outcome.result
            stored = self.run_store.complete(
                run.id,
                RunStatus.SUCCEEDED,
                res.row_count,
                None,
                res.file_bytes,
                res.content_type,
                res.file_name,
            )
            if not stored:
                logger.warning("Report run %s was already finished; result not stored", run.id)
            finished = self.clock()
            self.report_store.update(replace(report, last_run=finished))
            logger.info(
                "Report run %s succeeded (report=%s workspace=%s rows=%d)",
                run.id, report_id, workspace_id, res.row_count,
            )
            return replace(
                run,
                status=RunStatus.SUCCEEDED,
                finished_at=finished,
                row_count=res.row_count,
                file_bytes=res.file_bytes,
                content_type=res.content_type,
                file_name=res.file_name,
            )

        logger.error(
            "Report run %s for report %s failed for workspace %s",
            run.id, report_id, workspace_id,
            exc_info=outcome.error,
        )
        if not self.run_store.complete(run.id, RunStatus.FAILED, 0, None):
            logger.warning("Report run %s was already finished; failure not stored", run.id)
        return replace(
            run,
            status=RunStatus.FAILED,
            finished_at=self.clock(),
            row_count=0,
            file_bytes=None,
        )
