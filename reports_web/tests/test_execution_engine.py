from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from reports_web.domain.errors import ReportCancelledError, UnknownSourceError
from reports_web.domain.models import Contact, InventoryItem, Location, Ticket, TicketChargeLine
from reports_web.services.csv_codec import decode_text
from reports_web.services.definition_codec import ReportDefinitionCodec, SourceCatalog
from reports_web.services.execution_engine import (
    CSV_CONTENT_TYPE,
    ReportingEngine,
    ReportSource,
    format_value,
)
from reports_web.tests.fakes import FakeSource, make_report

FIXED_NOW = datetime(2025, 3, 4, 5, 6, 7, tzinfo=timezone.utc)


# -----------------------------
# Helpers
# -----------------------------
def _engine(tickets=(), contacts=(), locations=(), inventory=()) -> ReportingEngine:
    return ReportingEngine(
        codec=ReportDefinitionCodec(catalog=SourceCatalog.standard()),
        sources={
            ReportSource.TICKETS: FakeSource(*tickets),
            ReportSource.CONTACTS: FakeSource(*contacts),
            ReportSource.LOCATIONS: FakeSource(*locations),
            ReportSource.INVENTORY: FakeSource(*inventory),
        },
        clock=lambda: FIXED_NOW,
    )


def _definition(source: str, fields: list[str], filters=None, order_by=None) -> str:
    doc = {"source": source, "fields": fields, "filters": filters or []}
    if order_by is not None:
        doc["orderBy"] = order_by
    return json.dumps(doc)


def _rows(result) -> list[list[str]]:
    return decode_text(result.file_bytes.decode("utf-8"))


# -----------------------------
# Projection and encoding
# -----------------------------
def test_execute_projects_requested_fields_in_order():
    engine = _engine(
        contacts=[
            Contact(id=1, workspace_id=1, name="Ann", email="ann@example.com", company="Acme, \"Inc\""),
            Contact(id=2, workspace_id=1, name="Bob", email="bob@example.com"),
        ]
    )
    report = make_report(definition_json=_definition("contacts", ["Company", "Name", "Id"]))

    result = engine.execute(1, report)

    assert result.row_count == 2
    assert result.content_type == CSV_CONTENT_TYPE
    assert result.file_name == "run_20250304_050607.csv"
    assert _rows(result) == [
        ["Company", "Name", "Id"],
        ['Acme, "Inc"', "Ann", "1"],
        ["", "Bob", "2"],
    ]


def test_execute_writes_utf8_without_bom():
    engine = _engine(tickets=[Ticket(id=1, workspace_id=1, subject="Café")])
    result = engine.execute(1, make_report(definition_json=_definition("tickets", ["Subject"])))
    assert not result.file_bytes.startswith(b"\xef\xbb\xbf")
    assert result.file_bytes.decode("utf-8") == "Subject\nCafé\n"


def test_execute_keeps_duplicate_fields():
    engine = _engine(tickets=[Ticket(id=9, workspace_id=1)])
    result = engine.execute(1, make_report(definition_json=_definition("tickets", ["Id", "Id"])))
    assert _rows(result) == [["Id", "Id"], ["9", "9"]]


def test_execute_only_reads_the_given_workspace():
    engine = _engine(tickets=[Ticket(id=1, workspace_id=1), Ticket(id=2, workspace_id=2)])
    result = engine.execute(2, make_report(workspace_id=2, definition_json=_definition("tickets", ["Id"])))
    assert _rows(result) == [["Id"], ["2"]]


def test_execute_empty_source_writes_header_only():
    engine = _engine()
    result = engine.execute(1, make_report(definition_json=_definition("locations", ["Name"])))
    assert result.row_count == 0
    assert result.file_bytes == b"Name\n"


def test_execute_formats_values():
    engine = _engine(
        locations=[
            Location(
                id=3, workspace_id=1, name="HQ", active=False, ticket_count=4,
                last_ticket_at=datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            )
        ],
        inventory=[InventoryItem(id=5, workspace_id=1, sku="S-1", cost=Decimal("12.50"), price=None)],
    )
    loc = engine.execute(1, make_report(definition_json=_definition("locations", ["Active", "TicketCount", "LastTicketAt"])))
    inv = engine.execute(1, make_report(definition_json=_definition("inventory", ["Sku", "Cost", "Price"])))

    assert _rows(loc)[1] == ["false", "4", "2025-01-02T03:04:05+00:00"]
    assert _rows(inv)[1] == ["S-1", "12.50", ""]


@pytest.mark.parametrize(
    "value, expected",
    [(None, ""), (True, "true"), (Decimal("1.0"), "1.0"), (ReportSource.TICKETS, "tickets"), (7, "7")],
)
def test_format_value(value, expected):
    assert format_value(value) == expected


# -----------------------------
# Field normalization
# -----------------------------
def test_unknown_fields_are_dropped():
    engine = _engine(tickets=[Ticket(id=1, workspace_id=1, subject="s")])
    result = engine.execute(1, make_report(definition_json=_definition("tickets", ["Nope", "Subject"])))
    assert _rows(result)[0] == ["Subject"]


def test_no_usable_fields_falls_back_to_first_five_catalog_fields():
    engine = _engine(tickets=[Ticket(id=1, workspace_id=1)])
    result = engine.execute(1, make_report(definition_json=_definition("tickets", ["Nope"])))
    assert _rows(result)[0] == ["Id", "Subject", "Description", "Type", "Priority"]


def test_empty_field_list_falls_back_to_first_five_catalog_fields():
    engine = _engine()
    result = engine.execute(1, make_report(definition_json=_definition("contacts", [])))
    assert _rows(result)[0] == ["Id", "Name", "Email", "Phone", "Company"]


def test_malformed_definition_runs_default_ticket_report():
    engine = _engine(tickets=[Ticket(id=1, workspace_id=1, subject="s", status="Open")])
    result = engine.execute(1, make_report(definition_json="{oops"))
    assert _rows(result)[0] == ["Id", "Subject", "Status", "CreatedAt"]


def test_unknown_source_raises():
    engine = _engine()
    with pytest.raises(UnknownSourceError, match="Unknown report source: widgets"):
        engine.execute(1, make_report(definition_json=_definition("widgets", ["Id"])))


def test_source_names_are_case_insensitive():
    engine = _engine(tickets=[Ticket(id=1, workspace_id=1)])
    result = engine.execute(1, make_report(definition_json=_definition("TICKETS", ["Id"])))
    assert result.row_count == 1


# -----------------------------
# Filters and ordering
# -----------------------------
def test_execute_applies_filters_and_ordering():
    engine = _engine(
        tickets=[
            Ticket(id=1, workspace_id=1, status="Open"),
            Ticket(id=2, workspace_id=1, status="Closed"),
            Ticket(id=3, workspace_id=1, status="Open"),
        ]
    )
    report = make_report(
        definition_json=_definition(
            "tickets",
            ["Id"],
            filters=[{"field": "Status", "op": "eq", "value": "Open"}],
            order_by=[{"field": "Id", "dir": "desc"}],
        )
    )
    assert _rows(engine.execute(1, report)) == [["Id"], ["3"], ["1"]]


def _charged_tickets() -> list[Ticket]:
    return [
        Ticket(id=1, workspace_id=1, charge_lines=(
            TicketChargeLine(Decimal("10.00"), location_id=1),
            TicketChargeLine(Decimal("5.00"), location_id=2),
            TicketChargeLine(Decimal("2.00")),
        )),
        Ticket(id=2, workspace_id=1, charge_lines=(TicketChargeLine(Decimal("7.00"), location_id=2),)),
        Ticket(id=3, workspace_id=1),
    ]


def _charges(filters=None) -> list[list[str]]:
    engine = _engine(tickets=_charged_tickets())
    report = make_report(
        definition_json=_definition("tickets", ["Id", "ChargeAmount", "ChargeAmountAtLocation"], filters=filters)
    )
    return _rows(engine.execute(1, report))[1:]


def test_charge_at_location_without_location_filter_counts_every_line():
    assert _charges() == [["1", "17.00", "17.00"], ["2", "7.00", "7.00"], ["3", "0", "0"]]


def test_location_filter_keeps_tickets_with_a_line_there():
    assert _charges([{"field": "LocationId", "op": "eq", "value": 2}]) == [
        ["1", "17.00", "5.00"],
        ["2", "7.00", "7.00"],
    ]
    assert _charges([{"field": "LocationId", "op": "in", "value": [1]}]) == [["1", "17.00", "10.00"]]


def test_location_filter_with_no_match_returns_no_rows():
    engine = _engine(tickets=_charged_tickets())
    report = make_report(
        definition_json=_definition("tickets", ["Id"], filters=[{"field": "LocationId", "op": "eq", "value": 99}])
    )
    result = engine.execute(1, report)
    assert result.row_count == 0
    assert result.file_bytes == b"Id\n"


def test_charge_location_overrides_location_filter_for_the_amount():
    rows = _charges([
        {"field": "LocationId", "op": "eq", "value": 2},
        {"field": "ChargeLocationId", "op": "eq", "value": 1},
    ])
    assert rows == [["1", "17.00", "10.00"], ["2", "7.00", "0"]]


def test_charge_location_alone_keeps_every_row():
    assert _charges([{"field": "ChargeLocationId", "op": "eq", "value": 2}]) == [
        ["1", "17.00", "5.00"],
        ["2", "7.00", "7.00"],
        ["3", "0", "0"],
    ]


def test_location_id_is_not_a_projectable_ticket_field():
    engine = _engine(tickets=_charged_tickets())
    result = engine.execute(1, make_report(definition_json=_definition("tickets", ["Id", "LocationId"])))
    assert _rows(result)[0] == ["Id"]


# -----------------------------
# Cancellation and wiring
# -----------------------------
def test_cancelled_before_start_raises():
    source = FakeSource(Ticket(id=1, workspace_id=1))
    engine = _engine()
    engine.sources = {**engine.sources, ReportSource.TICKETS: source}
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(ReportCancelledError):
        engine.execute(1, make_report(), cancel)
    assert source.calls == []


def test_missing_source_registration_is_rejected():
    with pytest.raises(ValueError, match="No entity source"):
        ReportingEngine(
            codec=ReportDefinitionCodec(catalog=SourceCatalog.standard()),
            sources={ReportSource.TICKETS: FakeSource()},
        )


def test_missing_accessor_is_rejected():
    with pytest.raises(ValueError, match="no accessor"):
        ReportingEngine(
            codec=ReportDefinitionCodec(catalog=SourceCatalog.standard()),
            sources={s: FakeSource() for s in ReportSource},
            accessors={s: {} for s in ReportSource},
        )
