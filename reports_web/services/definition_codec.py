from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from reports_web.domain.models import ReportDefinition

DEFAULT_SOURCE = "tickets"
DEFAULT_FIELDS = ("Id", "Subject", "Status", "CreatedAt")


def default_definition() -> ReportDefinition:
    return ReportDefinition(source=DEFAULT_SOURCE, fields=DEFAULT_FIELDS, filters_json=None)


def _compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class SourceCatalog:
    """
    Fixed source -> allowed projection fields map.
    Built once in the composition root and handed to whoever needs it.
    """
    sources: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        frozen = {k.lower(): tuple(v) for k, v in dict(self.sources).items()}
        object.__setattr__(self, "sources", MappingProxyType(frozen))

    @classmethod
    def standard(cls) -> "SourceCatalog":
        return cls(
            sources={
                "tickets": (
                    "Id", "Subject", "Description", "Type", "Priority", "Status",
                    "AssignedUserId", "AssignedTeamId", "CreatedAt", "UpdatedAt",
                    "ContactId", "ChargeAmount", "ChargeAmountAtLocation",
                ),
                "contacts": (
                    "Id", "Name", "Email", "Phone", "Company", "Title", "Priority",
                    "Status", "AssignedUserId", "LastInteraction", "CreatedAt",
                ),
                "locations": (
                    "Id", "Name", "Address", "Active", "InventoryCount",
                    "TicketCount", "OpenTicketCount", "LastTicketAt",
                ),
                "inventory": (
                    "Id", "Sku", "Name", "Description", "Quantity", "LocationId",
                    "MinStock", "Cost", "Price", "Category", "Status", "Tags",
                    "LastRestockAt", "CreatedAt", "UpdatedAt", "TicketCount",
                    "OpenTicketCount", "LastTicketAt",
                ),
            }
        )

    def fields_for(self, source: str) -> Optional[tuple[str, ...]]:
        return self.sources.get((source or "").lower())


@dataclass(frozen=True)
class ReportDefinitionCodec:
    """
    Reads and writes the report definition document:
        {"source": "...", "fields": [...], "filters": [...]}
    parse() never raises; anything it cannot read becomes the default definition.
    """
    catalog: SourceCatalog

    def parse(self, raw: Optional[str]) -> ReportDefinition:
        if raw is None or not raw.strip():
            return default_definition()

        try:
            root = json.loads(raw)
        except (TypeError, ValueError):
            return default_definition()

        if not isinstance(root, dict):
            return default_definition()

        source = root.get("source")
        if source is None:
            source = DEFAULT_SOURCE
        elif not isinstance(source, str):
            return default_definition()

        fields: tuple[str, ...] = ()
        raw_fields = root.get("fields")
        if isinstance(raw_fields, list):
            fields = tuple(f for f in raw_fields if isinstance(f, str) and f.strip())

        filters_json = _compact(root["filters"]) if "filters" in root else None
        order_by_json = _compact(root["orderBy"]) if "orderBy" in root else None

        return ReportDefinition(
            source=source,
            fields=fields,
            filters_json=filters_json,
            order_by_json=order_by_json,
        )

    def build(
        self,
        source: Optional[str],
        fields_csv: Optional[str],
        filters_json: Optional[str],
        order_by_json: Optional[str] = None,
    ) -> str:
        fields = [f.strip() for f in (fields_csv or "").split(",") if f.strip()]
        source_part = _compact((source or DEFAULT_SOURCE).lower())
        fields_part = ",".join(_compact(f) for f in fields)
        filters_part = filters_json.strip() if (filters_json or "").strip() else "[]"

        out = f'{{"source":{source_part},"fields":[{fields_part}],"filters":{filters_part}'
        if (order_by_json or "").strip():
            out += f',"orderBy":{order_by_json.strip()}'
        return out + "}"

    def available_sources(self) -> Mapping[str, tuple[str, ...]]:
        return self.catalog.sources
