from __future__ import annotations

import atexit
import logging

from flask import Flask

from reports_web.adapters.sqlserver_reports import (
    SqlServerContactSource,
    SqlServerDatabase,
    SqlServerInventorySource,
    SqlServerLocationSource,
    SqlServerReportRepository,
    SqlServerReportRunRepository,
    SqlServerTicketSource,
)
from reports_web.config.ini_config import IniConfig
from reports_web.repositories.run_repository import RunFileRepository
from reports_web.services.backfill_service import ReportRunBackfillService
from reports_web.services.definition_codec import ReportDefinitionCodec, SourceCatalog
from reports_web.services.execution_engine import ReportingEngine, ReportSource
from reports_web.services.report_scheduler import ScheduledReportRunner
from reports_web.services.run_service import ReportRunService
from reports_web.web.routes import create_blueprint


def create_app() -> Flask:
    ini = IniConfig.from_env_or_default()
    settings = ini.load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    codec = ReportDefinitionCodec(catalog=SourceCatalog.standard())

    db = SqlServerDatabase(settings.sqlserver)
    report_repo = SqlServerReportRepository(db)
    run_repo = SqlServerReportRunRepository(db)

    engine = ReportingEngine(
        codec=codec,
        sources={
            ReportSource.TICKETS: SqlServerTicketSource(db),
            ReportSource.CONTACTS: SqlServerContactSource(db),
            ReportSource.LOCATIONS: SqlServerLocationSource(db),
            ReportSource.INVENTORY: SqlServerInventorySource(db),
        },
    )

    run_service = ReportRunService(
        report_store=report_repo,
        run_store=run_repo,
        executor=engine,
    )

    backfill_service = ReportRunBackfillService(
        run_store=run_repo,
        files=RunFileRepository(artifacts_base=settings.artifacts_base),
    )

    app = Flask(__name__)
    app.register_blueprint(
        create_blueprint(
            codec,
            run_service,
            backfill_service,
            default_take=settings.default_take,
            max_take=settings.max_take,
            runs_take=settings.runs_take,
        )
    )

    if settings.scheduler_enabled:
        runner = ScheduledReportRunner(
            report_store=report_repo,
            run_service=run_service,
            interval_seconds=settings.scheduler_interval_seconds,
        )
        runner.start()
        atexit.register(runner.stop)
        app.extensions["report_scheduler"] = runner

    app.config["HOST"] = settings.flask_host
    app.config["PORT"] = settings.flask_port
    app.config["DEBUG"] = settings.flask_debug

    return app
