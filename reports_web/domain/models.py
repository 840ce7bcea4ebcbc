######## models.py
########

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from enum import Enum
from typing import Collection, Optional


class RunStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED)


@dataclass(frozen=True)
class ReportDefinition:
    source: str
    fields: tuple[str, ...]
    filters_json: Optional[str] = None
    order_by_json: Optional[str] = None


@dataclass(frozen=True)
class Report:
    id: int
    workspace_id: int
    name: str
    ready: bool = False
    definition_json: str = ""
    last_run: Optional[datetime] = None

    # Scheduling; schedule_type is one of: none, daily, weekly, monthly
    schedule_enabled: bool = False
    schedule_type: str = "none"
    schedule_time: Optional[time] = None
    schedule_day_of_week: Optional[int] = None   # 0=Sunday..6=Saturday
    schedule_day_of_month: Optional[int] = None  # 1..31


@dataclass(frozen=True)
class ReportRun:
    id: int
    workspace_id: int
    report_id: int
    status: RunStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    row_count: int = 0
    file_bytes: Optional[bytes] = None
    content_type: str = ""
    file_name: str = ""
    file_path: Optional[str] = None   # legacy on-disk artifact location

    @property
    def has_content(self) -> bool:
        return bool(self.file_bytes)


@dataclass(frozen=True)
class ReportExecutionResult:
    row_count: int
    file_bytes: bytes
    file_name: str
    content_type: str


@dataclass(frozen=True)
class ReportRunPage:
    page: int
    take: int
    total_rows: int
    total_pages: int
    from_row: int
    to_row: int
    has_content: bool
    headers: tuple[str, ...] = ()
    rows: tuple[tuple[str, ...], ...] = ()


# -----------------------------
# Source entities (rows supplied by the entity collaborators)
# -----------------------------
@dataclass(frozen=True)
class TicketChargeLine:
    """One inventory line on a ticket, priced at its unit price or the item's list price."""
    amount: Decimal
    location_id: Optional[int] = None


@dataclass(frozen=True)
class Ticket:
    id: int
    workspace_id: int
    subject: str = ""
    description: str = ""
    type: Optional[str] = None
    priority: str = "Normal"
    status: str = "New"
    assigned_user_id: Optional[int] = None
    assigned_team_id: Optional[int] = None
    contact_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    charge_lines: tuple[TicketChargeLine, ...] = ()

    @property
    def charge_amount(self) -> Decimal:
        return sum((line.amount for line in self.charge_lines), Decimal("0"))

    @property
    def location_ids(self) -> frozenset[int]:
        return frozenset(line.location_id for line in self.charge_lines if line.location_id is not None)

    def charge_amount_for(self, location_ids: Optional[Collection[int]]) -> Decimal:
        # no restriction: every line counts, located or not
        if not location_ids:
            return self.charge_amount
        return sum(
            (line.amount for line in self.charge_lines if line.location_id in location_ids),
            Decimal("0"),
        )


@dataclass(frozen=True)
class Contact:
    id: int
    workspace_id: int
    name: str = ""
    email: str = ""
    phone: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    assigned_user_id: Optional[int] = None
    last_interaction: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Location:
    id: int
    workspace_id: int
    name: str = ""
    address: str = ""
    active: bool = True
    inventory_count: int = 0
    ticket_count: int = 0
    open_ticket_count: int = 0
    last_ticket_at: Optional[datetime] = None


@dataclass(frozen=True)
class InventoryItem:
    id: int
    workspace_id: int
    sku: str = ""
    name: str = ""
    description: Optional[str] = None
    quantity: int = 0
    location_id: Optional[int] = None
    min_stock: Optional[int] = None
    cost: Decimal = Decimal("0")
    price: Optional[Decimal] = None
    category: Optional[str] = None
    status: str = "active"
    tags: Optional[str] = None
    last_restock_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    ticket_count: int = 0
    open_ticket_count: int = 0
    last_ticket_at: Optional[datetime] = None


@dataclass(frozen=True)
class BackfillSummary:
    scanned: int = 0
    updated: int = 0
    missing: tuple[int, ...] = ()
