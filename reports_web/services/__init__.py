from .backfill_service import ReportRunBackfillService
from .definition_codec import ReportDefinitionCodec, SourceCatalog
from .execution_engine import ReportingEngine, ReportSource
from .pager import clamp_page_request, get_run_page
from .report_scheduler import ScheduledReportRunner, is_due
from .run_service import ReportRunService

__all__ = [
    "ReportDefinitionCodec",
    "SourceCatalog",
    "ReportingEngine",
    "ReportSource",
    "ReportRunService",
    "ReportRunBackfillService",
    "ScheduledReportRunner",
    "is_due",
    "get_run_page",
    "clamp_page_request",
]
