from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from reports_web.domain.errors import ReportCancelledError, UnknownSourceError
from reports_web.domain.models import Report, ReportExecutionResult
from reports_web.ports.stores import EntitySource
from reports_web.services.csv_codec import encode_table
from reports_web.services.definition_codec import ReportDefinitionCodec
from reports_web.services.report_filters import Accessor, apply_filters, apply_ordering, location_filter_ids

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPE = "text/csv"
DEFAULT_FIELD_COUNT = 5
CANCEL_CHECK_EVERY = 500


class ReportSource(str, Enum):
    TICKETS = "tickets"
    CONTACTS = "contacts"
    LOCATIONS = "locations"
    INVENTORY = "inventory"

    @classmethod
    def resolve(cls, raw: str) -> "ReportSource":
        try:
            return cls((raw or "").strip().lower())
        except ValueError as e:
            raise UnknownSourceError(raw) from e


def _attr(name: str) -> Accessor:
    return lambda entity: getattr(entity, name, None)


SOURCE_ACCESSORS: Mapping[ReportSource, Mapping[str, Accessor]] = MappingProxyType({
    ReportSource.TICKETS: MappingProxyType({
        "Id": _attr("id"),
        "Subject": _attr("subject"),
        "Description": _attr("description"),
        "Type": _attr("type"),
        "Priority": _attr("priority"),
        "Status": _attr("status"),
        "AssignedUserId": _attr("assigned_user_id"),
        "AssignedTeamId": _attr("assigned_team_id"),
        "CreatedAt": _attr("created_at"),
        "UpdatedAt": _attr("updated_at"),
        "ContactId": _attr("contact_id"),
        "ChargeAmount": _attr("charge_amount"),
        "ChargeAmountAtLocation": lambda t: t.charge_amount_for(None),
        # filter-only: not in the catalog, so it is never projected
        "LocationId": _attr("location_ids"),
    }),
    ReportSource.CONTACTS: MappingProxyType({
        "Id": _attr("id"),
        "Name": _attr("name"),
        "Email": _attr("email"),
        "Phone": _attr("phone"),
        "Company": _attr("company"),
        "Title": _attr("title"),
        "Priority": _attr("priority"),
        "Status": _attr("status"),
        "AssignedUserId": _attr("assigned_user_id"),
        "LastInteraction": _attr("last_interaction"),
        "CreatedAt": _attr("created_at"),
    }),
    ReportSource.LOCATIONS: MappingProxyType({
        "Id": _attr("id"),
        "Name": _attr("name"),
        "Address": _attr("address"),
        "Active": _attr("active"),
        "InventoryCount": _attr("inventory_count"),
        "TicketCount": _attr("ticket_count"),
        "OpenTicketCount": _attr("open_ticket_count"),
        "LastTicketAt": _attr("last_ticket_at"),
    }),
    ReportSource.INVENTORY: MappingProxyType({
        "Id": _attr("id"),
        "Sku": _attr("sku"),
        "Name": _attr("name"),
        "Description": _attr("description"),
        "Quantity": _attr("quantity"),
        "LocationId": _attr("location_id"),
        "MinStock": _attr("min_stock"),
        "Cost": _attr("cost"),
        "Price": _attr("price"),
        "Category": _attr("category"),
        "Status": _attr("status"),
        "Tags": _attr("tags"),
        "LastRestockAt": _attr("last_restock_at"),
        "CreatedAt": _attr("created_at"),
        "UpdatedAt": _attr("updated_at"),
        "TicketCount": _attr("ticket_count"),
        "OpenTicketCount": _attr("open_ticket_count"),
        "LastTicketAt": _attr("last_ticket_at"),
    }),
})

# Filter fields that shape a projected value instead of selecting rows
SOURCE_FILTER_DIRECTIVES: Mapping[ReportSource, frozenset[str]] = MappingProxyType({
    ReportSource.TICKETS: frozenset({"ChargeLocationId"}),
})


def format_value(value: Any) -> str:
    """Canonical display text for a projected cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _with_location_charge(getters: Mapping[str, Accessor], filters_json: Optional[str]) -> Mapping[str, Accessor]:
    """ChargeAmountAtLocation sums lines at ChargeLocationId, else at the LocationId filter, else all lines."""
    ids = location_filter_ids(filters_json, "ChargeLocationId") or location_filter_ids(filters_json, "LocationId")
    if ids is None:
        return getters
    return {**getters, "ChargeAmountAtLocation": lambda t: t.charge_amount_for(ids)}


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ReportCancelledError("Report execution was cancelled.")


@dataclass
class ReportingEngine:
    """
    Executes one report: bulk read from the source, filter, order, project, encode.
    Everything is done in memory in a single pass per stage.
    """
    codec: ReportDefinitionCodec
    sources: Mapping[ReportSource, EntitySource]
    accessors: Mapping[ReportSource, Mapping[str, Accessor]] = field(default_factory=lambda: SOURCE_ACCESSORS)
    clock: Callable[[], datetime] = _utcnow

    def __post_init__(self) -> None:
        for source in ReportSource:
            if source not in self.sources:
                raise ValueError(f"No entity source registered for {source.value}")
            getters = self.accessors.get(source) or {}
            missing = [f for f in (self.codec.catalog.fields_for(source.value) or ()) if f not in getters]
            if missing:
                raise ValueError(f"Source {source.value} has no accessor for: {', '.join(missing)}")

    def normalize_fields(self, source: ReportSource, fields: tuple[str, ...]) -> tuple[str, ...]:
        allowed = self.codec.catalog.fields_for(source.value) or ()
        kept = tuple(f for f in fields if f in allowed)
        dropped = [f for f in fields if f not in allowed]
        if dropped:
            logger.warning("Ignoring fields not available for %s: %s", source.value, ", ".join(dropped))
        if not kept:
            return tuple(allowed[:DEFAULT_FIELD_COUNT])
        return kept

    def execute(
        self,
        workspace_id: int,
        report: Report,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReportExecutionResult:
        definition = self.codec.parse(report.definition_json)
        source = ReportSource.resolve(definition.source)
        fields = self.normalize_fields(source, definition.fields)
        getters = self.accessors[source]
        if source is ReportSource.TICKETS:
            getters = _with_location_charge(getters, definition.filters_json)

        _check_cancelled(cancel_event)
        entities = list(self.sources[source].list(workspace_id))
        _check_cancelled(cancel_event)

        entities = apply_filters(
            entities, definition.filters_json, getters, SOURCE_FILTER_DIRECTIVES.get(source, frozenset())
        )
        entities = apply_ordering(entities, definition.order_by_json, getters)

        rows: list[list[str]] = []
        for i, entity in enumerate(entities):
            if i % CANCEL_CHECK_EVERY == 0:
                _check_cancelled(cancel_event)
            rows.append([format_value(getters[f](entity)) for f in fields])

        text = encode_table(fields, rows)
        file_name = f"run_{self.clock():%Y%m%d_%H%M%S}.csv"

        logger.info(
            "Report %s executed for workspace %s: source=%s rows=%d",
            report.id, workspace_id, source.value, len(rows),
        )
        return ReportExecutionResult(
            row_count=len(rows),
            file_bytes=text.encode("utf-8"),
            file_name=file_name,
            content_type=CSV_CONTENT_TYPE,
        )
