from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

from reports_web.domain.models import BackfillSummary
from reports_web.ports.stores import ReportRunStore
from reports_web.repositories.run_repository import RunFileRepository
from reports_web.services.execution_engine import CSV_CONTENT_TYPE

logger = logging.getLogger(__name__)


@dataclass
class ReportRunBackfillService:
    """Copies legacy on-disk artifacts into the run store so the pager can read them."""
    run_store: ReportRunStore
    files: RunFileRepository

    def backfill(self, workspace_id: int, report_id: Optional[int] = None, take: int = 10000) -> BackfillSummary:
        runs = self.run_store.list_missing_content(workspace_id, report_id, take)
        updated = 0
        missing: list[int] = []

        for run in runs:
            data = self.files.read_artifact(run.file_path)
            if data is None:
                logger.warning("Artifact for run %s not found at %r", run.id, run.file_path)
                missing.append(run.id)
                continue

            name = run.file_name or PurePath(run.file_path or "").name or f"run_{run.id}.csv"
            if self.run_store.update_content(run.id, data, run.content_type or CSV_CONTENT_TYPE, name):
                updated += 1

        logger.info(
            "Backfill for workspace %s: scanned=%d updated=%d missing=%d",
            workspace_id, len(runs), updated, len(missing),
        )
        return BackfillSummary(scanned=len(runs), updated=updated, missing=tuple(missing))
