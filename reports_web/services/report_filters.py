from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Collection, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

Accessor = Callable[[Any], Any]

_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": lambda a, b: a == b,
    "neq": lambda a, b: a != b,
    "lt": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
    "gt": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
}


class _Uncoercible(Exception):
    pass


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_datetime(raw: Any) -> datetime:
    if not isinstance(raw, str) or not raw.strip():
        raise _Uncoercible(raw)
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError as e:
        raise _Uncoercible(raw) from e


def _coerce(expected: Any, actual: Any) -> Any:
    """Convert a JSON filter value to the type of the entity value it is compared with."""
    if expected is None:
        return None
    if isinstance(actual, bool):
        if isinstance(expected, bool):
            return expected
        raise _Uncoercible(expected)
    if isinstance(actual, datetime):
        return _parse_datetime(expected)
    if isinstance(actual, date):
        return _parse_datetime(expected).date()
    if isinstance(actual, (int, float, Decimal)):
        if isinstance(expected, bool):
            raise _Uncoercible(expected)
        try:
            return Decimal(str(expected))
        except InvalidOperation as e:
            raise _Uncoercible(expected) from e
    if isinstance(actual, str):
        if isinstance(expected, str):
            return expected
        raise _Uncoercible(expected)
    return expected


def _normalize(actual: Any) -> Any:
    if isinstance(actual, datetime):
        return _as_utc(actual)
    if isinstance(actual, (int, float)) and not isinstance(actual, bool):
        return Decimal(str(actual))
    return actual


def _matches_set(op: str, actual: frozenset, expected: Any) -> bool:
    """Set-valued fields (a ticket's line locations) match when any member matches."""
    if op not in ("eq", "in"):
        raise _Uncoercible(expected)
    if op == "in" and not isinstance(expected, list):
        raise _Uncoercible(expected)
    return any(_matches(op, member, expected) for member in actual)


def _matches(op: str, actual: Any, expected: Any) -> bool:
    if isinstance(actual, frozenset):
        return _matches_set(op, actual, expected)

    if op in ("eq", "neq"):
        if actual is None or expected is None:
            same = actual is None and expected is None
            return same if op == "eq" else not same
        return _COMPARISONS[op](_normalize(actual), _coerce(expected, actual))

    if actual is None:
        return False

    if op in _COMPARISONS:
        value = _coerce(expected, actual)
        if value is None:
            return False
        return _COMPARISONS[op](_normalize(actual), value)

    if op == "contains":
        if not isinstance(actual, str) or not isinstance(expected, str):
            raise _Uncoercible(expected)
        return expected.casefold() in actual.casefold()

    if op == "between":
        if not isinstance(expected, list) or len(expected) != 2:
            raise _Uncoercible(expected)
        low, high = (_coerce(v, actual) for v in expected)
        if low is None or high is None:
            raise _Uncoercible(expected)
        return low <= _normalize(actual) <= high

    if op == "in":
        if not isinstance(expected, list):
            raise _Uncoercible(expected)
        options = []
        for v in expected:
            try:
                options.append(_coerce(v, actual))
            except _Uncoercible:
                continue
        return _normalize(actual) in options

    raise KeyError(op)


def _load_list(raw: Optional[str], what: str) -> list[dict]:
    if not (raw or "").strip():
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s document: %r", what, raw)
        return []
    if not isinstance(value, list):
        logger.warning("Ignoring %s document that is not a list", what)
        return []
    return [v for v in value if isinstance(v, dict)]


def apply_filters(
    rows: Sequence[Any],
    filters_json: Optional[str],
    accessors: Mapping[str, Accessor],
    directives: Collection[str] = (),
) -> list[Any]:
    """
    Applies {"field", "op", "value"} filters in order. A filter whose field, op
    or value cannot be used is skipped and logged rather than failing the run.
    Fields named in `directives` steer the projection and never remove rows.
    """
    out = list(rows)
    for spec in _load_list(filters_json, "filters"):
        field_name = str(spec.get("field") or "")
        op = str(spec.get("op") or "eq").lower()
        expected = spec.get("value")

        if field_name in directives:
            continue
        accessor = accessors.get(field_name)
        if accessor is None:
            logger.warning("Skipping filter on unknown field %r", field_name)
            continue
        if op not in _COMPARISONS and op not in ("contains", "between", "in"):
            logger.warning("Skipping filter with unsupported op %r on %s", op, field_name)
            continue

        try:
            out = [row for row in out if _matches(op, accessor(row), expected)]
        except (_Uncoercible, TypeError):
            logger.warning("Skipping filter %s %s with unusable value %r", field_name, op, expected)
    return out


def apply_ordering(
    rows: Sequence[Any],
    order_by_json: Optional[str],
    accessors: Mapping[str, Accessor],
) -> list[Any]:
    """First key is primary; stable sorts are applied from the last key back."""
    out = list(rows)
    for spec in reversed(_load_list(order_by_json, "orderBy")):
        field_name = str(spec.get("field") or "")
        accessor = accessors.get(field_name)
        if accessor is None:
            logger.warning("Skipping ordering on unknown field %r", field_name)
            continue
        descending = str(spec.get("dir") or "asc").lower() == "desc"

        def key(row: Any, _get: Accessor = accessor) -> tuple[bool, Any]:
            value = _normalize(_get(row))
            return (value is not None, value if value is not None else 0)

        try:
            out = sorted(out, key=key, reverse=descending)
        except TypeError:
            logger.warning("Skipping ordering on %s: values are not comparable", field_name)
    return out


def location_filter_ids(filters_json: Optional[str], field_name: str) -> Optional[tuple[int, ...]]:
    """
    Ids from the first usable `eq` (number) or `in` (array) filter on field_name,
    matched case-insensitively. None when there is no such filter.
    """
    wanted = field_name.casefold()
    for spec in _load_list(filters_json, "filters"):
        if str(spec.get("field") or "").casefold() != wanted:
            continue
        op = str(spec.get("op") or "eq").lower()
        value = spec.get("value")
        if op == "eq" and isinstance(value, int) and not isinstance(value, bool):
            return (value,)
        if op == "in" and isinstance(value, list):
            ids = tuple(v for v in value if isinstance(v, int) and not isinstance(v, bool))
            if ids:
                return ids
    return None
