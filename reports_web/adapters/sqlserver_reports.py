from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional

import pyodbc

from reports_web.config.ini_config import SqlServerSettings
from reports_web.domain.models import (
    Contact,
    InventoryItem,
    Location,
    Report,
    ReportRun,
    RunStatus,
    Ticket,
    TicketChargeLine,
)


def _get(r, name: str, default: Any = None) -> Any:
    return getattr(r, name, default)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # DATETIME2 columns hold naive UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    if value is None:
        return default
    return value if isinstance(value, Decimal) else Decimal(str(value))


class SqlServerDatabase:
    def __init__(self, settings: SqlServerSettings):
        if not settings.database:
            raise ValueError("sqlserver.database is empty in INI")
        self._settings = settings

    def connect(self):
        return pyodbc.connect(self._settings.connection_string())

    def table(self, name: str) -> str:
        return f"{self._settings.schema}.{name}"


# -----------------------------
# Reports
# -----------------------------
class SqlServerReportRepository:
    _COLUMNS = """
        Id, WorkspaceId, Name, Ready, DefinitionJson, LastRun,
        ScheduleEnabled, ScheduleType, ScheduleTime, ScheduleDayOfWeek, ScheduleDayOfMonth
    """

    def __init__(self, db: SqlServerDatabase):
        self._db = db
        self.table_name = db.table("Reports")

    @staticmethod
    def _to_report(r) -> Report:
        return Report(
            id=int(_get(r, "Id", 0)),
            workspace_id=int(_get(r, "WorkspaceId", 0)),
            name=str(_get(r, "Name", "") or ""),
            ready=bool(_get(r, "Ready", False)),
            definition_json=str(_get(r, "DefinitionJson", "") or ""),
            last_run=_utc(_get(r, "LastRun")),
            schedule_enabled=bool(_get(r, "ScheduleEnabled", False)),
            schedule_type=str(_get(r, "ScheduleType", "none") or "none"),
            schedule_time=_get(r, "ScheduleTime"),
            schedule_day_of_week=_get(r, "ScheduleDayOfWeek"),
            schedule_day_of_month=_get(r, "ScheduleDayOfMonth"),
        )

    def find(self, workspace_id: int, report_id: int) -> Optional[Report]:
        q = f"SELECT {self._COLUMNS} FROM {self.table_name} WHERE WorkspaceId = ? AND Id = ?"
        with self._db.connect() as conn:
            r = conn.cursor().execute(q, workspace_id, report_id).fetchone()
        return self._to_report(r) if r else None

    def update(self, report: Report) -> Optional[Report]:
        q = f"""
        UPDATE {self.table_name}
        SET Name = ?, Ready = ?, DefinitionJson = ?, LastRun = ?,
            ScheduleEnabled = ?, ScheduleType = ?, ScheduleTime = ?,
            ScheduleDayOfWeek = ?, ScheduleDayOfMonth = ?
        WHERE WorkspaceId = ? AND Id = ?
        """
        with self._db.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                q,
                report.name,
                report.ready,
                report.definition_json,
                _naive_utc(report.last_run),
                report.schedule_enabled,
                report.schedule_type,
                report.schedule_time,
                report.schedule_day_of_week,
                report.schedule_day_of_month,
                report.workspace_id,
                report.id,
            )
            changed = cur.rowcount
        return report if changed else None

    def list_schedulable(self) -> List[Report]:
        q = f"SELECT {self._COLUMNS} FROM {self.table_name} WHERE ScheduleEnabled = 1 AND Ready = 1"
        with self._db.connect() as conn:
            rows = conn.cursor().execute(q).fetchall()
        return [self._to_report(r) for r in rows]


# -----------------------------
# Report runs
# -----------------------------
class SqlServerReportRunRepository:
    _COLUMNS = """
        Id, WorkspaceId, ReportId, Status, StartedAt, FinishedAt, RowCount,
        FilePath, FileBytes, ContentType, FileName
    """

    def __init__(self, db: SqlServerDatabase):
        self._db = db
        self.table_name = db.table("ReportRuns")

    @staticmethod
    def _to_run(r) -> ReportRun:
        return ReportRun(
            id=int(_get(r, "Id", 0)),
            workspace_id=int(_get(r, "WorkspaceId", 0)),
            report_id=int(_get(r, "ReportId", 0)),
            status=RunStatus(str(_get(r, "Status", "Pending") or "Pending")),
            started_at=_utc(_get(r, "StartedAt")),
            finished_at=_utc(_get(r, "FinishedAt")),
            row_count=int(_get(r, "RowCount", 0) or 0),
            file_path=_get(r, "FilePath"),
            file_bytes=bytes(_get(r, "FileBytes")) if _get(r, "FileBytes") is not None else None,
            content_type=str(_get(r, "ContentType", "") or ""),
            file_name=str(_get(r, "FileName", "") or ""),
        )

    def create(self, run: ReportRun) -> ReportRun:
        q = f"""
        INSERT INTO {self.table_name} (WorkspaceId, ReportId, Status, StartedAt, RowCount)
        OUTPUT INSERTED.Id
        VALUES (?, ?, ?, ?, ?)
        """
        with self._db.connect() as conn:
            row = conn.cursor().execute(
                q,
                run.workspace_id,
                run.report_id,
                run.status.value,
                _naive_utc(run.started_at),
                run.row_count,
            ).fetchone()
        return ReportRun(
            id=int(row[0]),
            workspace_id=run.workspace_id,
            report_id=run.report_id,
            status=run.status,
            started_at=run.started_at,
            row_count=run.row_count,
        )

    def _execute(self, q: str, *params) -> bool:
        with self._db.connect() as conn:
            cur = conn.cursor()
            cur.execute(q, *params)
            return cur.rowcount > 0

    def mark_running(self, run_id: int) -> bool:
        return self._execute(
            f"UPDATE {self.table_name} SET Status = ? WHERE Id = ?",
            RunStatus.RUNNING.value,
            run_id,
        )

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
        """A run that already reached a terminal status is left untouched."""
        terminal = [s.value for s in RunStatus if s.is_terminal]
        q = f"""
        UPDATE {self.table_name}
        SET Status = ?, RowCount = ?, FilePath = ?, FileBytes = CAST(? AS VARBINARY(MAX)),
            ContentType = ?, FileName = ?, FinishedAt = SYSUTCDATETIME()
        WHERE Id = ? AND Status NOT IN ({", ".join("?" for _ in terminal)})
        """
        return self._execute(
            q,
            status.value,
            row_count,
            file_path,
            pyodbc.Binary(file_bytes) if file_bytes is not None else None,
            content_type,
            file_name,
            run_id,
            *terminal,
        )

    def find(self, workspace_id: int, run_id: int) -> Optional[ReportRun]:
        q = f"SELECT {self._COLUMNS} FROM {self.table_name} WHERE WorkspaceId = ? AND Id = ?"
        with self._db.connect() as conn:
            r = conn.cursor().execute(q, workspace_id, run_id).fetchone()
        return self._to_run(r) if r else None

    def list_for_report(self, workspace_id: int, report_id: int, take: int = 50) -> List[ReportRun]:
        q = f"""
        SELECT TOP (?) {self._COLUMNS}
        FROM {self.table_name}
        WHERE WorkspaceId = ? AND ReportId = ?
        ORDER BY StartedAt DESC
        """
        with self._db.connect() as conn:
            rows = conn.cursor().execute(q, take, workspace_id, report_id).fetchall()
        return [self._to_run(r) for r in rows]

    def update_content(self, run_id: int, file_bytes: bytes, content_type: str, file_name: str) -> bool:
        return self._execute(
            f"UPDATE {self.table_name} SET FileBytes = ?, ContentType = ?, FileName = ? WHERE Id = ?",
            pyodbc.Binary(file_bytes),
            content_type,
            file_name,
            run_id,
        )

    def list_missing_content(
        self, workspace_id: int, report_id: Optional[int] = None, take: int = 10000
    ) -> List[ReportRun]:
        q = f"""
        SELECT TOP (?) {self._COLUMNS}
        FROM {self.table_name}
        WHERE WorkspaceId = ?
          AND FileBytes IS NULL
          AND FilePath IS NOT NULL
          AND Status = ?
        """
        params: list[Any] = [take, workspace_id, RunStatus.SUCCEEDED.value]
        if report_id is not None:
            q += " AND ReportId = ?"
            params.append(report_id)
        q += " ORDER BY StartedAt DESC"
        with self._db.connect() as conn:
            rows = conn.cursor().execute(q, *params).fetchall()
        return [self._to_run(r) for r in rows]


# -----------------------------
# Entity sources
# -----------------------------
class SqlServerTicketSource:
    def __init__(self, db: SqlServerDatabase):
        self._db = db

    def _charge_lines(self, conn, workspace_id: int) -> dict[int, list[TicketChargeLine]]:
        t, ti, inv = self._db.table("Tickets"), self._db.table("TicketInventories"), self._db.table("Inventory")
        q = f"""
        SELECT
            ti.TicketId, i.LocationId,
            CASE WHEN ti.UnitPrice <> 0 THEN ti.UnitPrice ELSE ISNULL(i.Price, 0) END * ti.Quantity AS Amount
        FROM {ti} ti
        JOIN {inv} i ON i.Id = ti.InventoryId
        JOIN {t} t ON t.Id = ti.TicketId
        WHERE t.WorkspaceId = ? AND i.WorkspaceId = ?
        """
        lines: dict[int, list[TicketChargeLine]] = {}
        for r in conn.cursor().execute(q, workspace_id, workspace_id).fetchall():
            lines.setdefault(int(_get(r, "TicketId", 0)), []).append(
                TicketChargeLine(
                    amount=_decimal(_get(r, "Amount"), Decimal("0")),
                    location_id=_get(r, "LocationId"),
                )
            )
        return lines

    def list(self, workspace_id: int) -> List[Ticket]:
        q = f"""
        SELECT
            Id, WorkspaceId, Subject, Description, Type, Priority, Status,
            AssignedUserId, AssignedTeamId, ContactId, CreatedAt, UpdatedAt
        FROM {self._db.table("Tickets")}
        WHERE WorkspaceId = ?
        """
        with self._db.connect() as conn:
            rows = conn.cursor().execute(q, workspace_id).fetchall()
            lines = self._charge_lines(conn, workspace_id)

        return [
            Ticket(
                id=int(_get(r, "Id", 0)),
                workspace_id=int(_get(r, "WorkspaceId", 0)),
                subject=str(_get(r, "Subject", "") or ""),
                description=str(_get(r, "Description", "") or ""),
                type=_get(r, "Type"),
                priority=str(_get(r, "Priority", "") or ""),
                status=str(_get(r, "Status", "") or ""),
                assigned_user_id=_get(r, "AssignedUserId"),
                assigned_team_id=_get(r, "AssignedTeamId"),
                contact_id=_get(r, "ContactId"),
                created_at=_utc(_get(r, "CreatedAt")),
                updated_at=_utc(_get(r, "UpdatedAt")),
                charge_lines=tuple(lines.get(int(_get(r, "Id", 0)), ())),
            )
            for r in rows
        ]


class SqlServerContactSource:
    def __init__(self, db: SqlServerDatabase):
        self._db = db

    def list(self, workspace_id: int) -> List[Contact]:
        q = f"""
        SELECT Id, WorkspaceId, Name, Email, Phone, Company, Title, Priority, Status,
               AssignedUserId, LastInteraction, CreatedAt
        FROM {self._db.table("Contacts")}
        WHERE WorkspaceId = ?
        """
        with self._db.connect() as conn:
            rows = conn.cursor().execute(q, workspace_id).fetchall()

        return [
            Contact(
                id=int(_get(r, "Id", 0)),
                workspace_id=int(_get(r, "WorkspaceId", 0)),
                name=str(_get(r, "Name", "") or ""),
                email=str(_get(r, "Email", "") or ""),
                phone=_get(r, "Phone"),
                company=_get(r, "Company"),
                title=_get(r, "Title"),
                priority=_get(r, "Priority"),
                status=_get(r, "Status"),
                assigned_user_id=_get(r, "AssignedUserId"),
                last_interaction=_utc(_get(r, "LastInteraction")),
                created_at=_utc(_get(r, "CreatedAt")),
            )
            for r in rows
        ]


# Open means any status other than Closed or Resolved.
_OPEN_TICKET = "t.Status NOT IN ('Closed', 'Resolved')"


class SqlServerLocationSource:
    def __init__(self, db: SqlServerDatabase):
        self._db = db

    def list(self, workspace_id: int) -> List[Location]:
        loc, inv = self._db.table("Locations"), self._db.table("Inventory")
        ti, t = self._db.table("TicketInventories"), self._db.table("Tickets")
        q = f"""
        SELECT
            l.Id, l.WorkspaceId, l.Name, l.Address, l.Active,
            (SELECT COUNT(*) FROM {inv} i WHERE i.WorkspaceId = l.WorkspaceId AND i.LocationId = l.Id) AS InventoryCount,
            (SELECT COUNT(DISTINCT t.Id) FROM {ti} ti
                JOIN {inv} i ON i.Id = ti.InventoryId
                JOIN {t} t ON t.Id = ti.TicketId
             WHERE i.WorkspaceId = l.WorkspaceId AND i.LocationId = l.Id AND t.WorkspaceId = l.WorkspaceId) AS TicketCount,
            (SELECT COUNT(DISTINCT t.Id) FROM {ti} ti
                JOIN {inv} i ON i.Id = ti.InventoryId
                JOIN {t} t ON t.Id = ti.TicketId
             WHERE i.WorkspaceId = l.WorkspaceId AND i.LocationId = l.Id AND t.WorkspaceId = l.WorkspaceId
               AND {_OPEN_TICKET}) AS OpenTicketCount,
            (SELECT MAX(t.CreatedAt) FROM {ti} ti
                JOIN {inv} i ON i.Id = ti.InventoryId
                JOIN {t} t ON t.Id = ti.TicketId
             WHERE i.WorkspaceId = l.WorkspaceId AND i.LocationId = l.Id AND t.WorkspaceId = l.WorkspaceId) AS LastTicketAt
        FROM {loc} l
        WHERE l.WorkspaceId = ?
        """
        with self._db.connect() as conn:
            rows = conn.cursor().execute(q, workspace_id).fetchall()

        return [
            Location(
                id=int(_get(r, "Id", 0)),
                workspace_id=int(_get(r, "WorkspaceId", 0)),
                name=str(_get(r, "Name", "") or ""),
                address=str(_get(r, "Address", "") or ""),
                active=bool(_get(r, "Active", True)),
                inventory_count=int(_get(r, "InventoryCount", 0) or 0),
                ticket_count=int(_get(r, "TicketCount", 0) or 0),
                open_ticket_count=int(_get(r, "OpenTicketCount", 0) or 0),
                last_ticket_at=_utc(_get(r, "LastTicketAt")),
            )
            for r in rows
        ]


class SqlServerInventorySource:
    def __init__(self, db: SqlServerDatabase):
        self._db = db

    def list(self, workspace_id: int) -> List[InventoryItem]:
        inv, ti, t = self._db.table("Inventory"), self._db.table("TicketInventories"), self._db.table("Tickets")
        q = f"""
        SELECT
            i.Id, i.WorkspaceId, i.Sku, i.Name, i.Description, i.Quantity, i.LocationId,
            i.MinStock, i.Cost, i.Price, i.Category, i.Status, i.Tags, i.LastRestockAt,
            i.CreatedAt, i.UpdatedAt,
            (SELECT COUNT(DISTINCT t.Id) FROM {ti} ti JOIN {t} t ON t.Id = ti.TicketId
             WHERE ti.InventoryId = i.Id AND t.WorkspaceId = i.WorkspaceId) AS TicketCount,
            (SELECT COUNT(DISTINCT t.Id) FROM {ti} ti JOIN {t} t ON t.Id = ti.TicketId
             WHERE ti.InventoryId = i.Id AND t.WorkspaceId = i.WorkspaceId AND {_OPEN_TICKET}) AS OpenTicketCount,
            (SELECT MAX(t.CreatedAt) FROM {ti} ti JOIN {t} t ON t.Id = ti.TicketId
             WHERE ti.InventoryId = i.Id AND t.WorkspaceId = i.WorkspaceId) AS LastTicketAt
        FROM {inv} i
        WHERE i.WorkspaceId = ?
        """
        with self._db.connect() as conn:
            rows = conn.cursor().execute(q, workspace_id).fetchall()

        return [
            InventoryItem(
                id=int(_get(r, "Id", 0)),
                workspace_id=int(_get(r, "WorkspaceId", 0)),
                sku=str(_get(r, "Sku", "") or ""),
                name=str(_get(r, "Name", "") or ""),
                description=_get(r, "Description"),
                quantity=int(_get(r, "Quantity", 0) or 0),
                location_id=_get(r, "LocationId"),
                min_stock=_get(r, "MinStock"),
                cost=_decimal(_get(r, "Cost"), Decimal("0")),
                price=_decimal(_get(r, "Price")),
                category=_get(r, "Category"),
                status=str(_get(r, "Status", "") or ""),
                tags=_get(r, "Tags"),
                last_restock_at=_utc(_get(r, "LastRestockAt")),
                created_at=_utc(_get(r, "CreatedAt")),
                updated_at=_utc(_get(r, "UpdatedAt")),
                ticket_count=int(_get(r, "TicketCount", 0) or 0),
                open_ticket_count=int(_get(r, "OpenTicketCount", 0) or 0),
                last_ticket_at=_utc(_get(r, "LastTicketAt")),
            )
            for r in rows
        ]
