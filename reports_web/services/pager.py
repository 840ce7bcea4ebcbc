from __future__ import annotations

import io
import math

from reports_web.domain.models import ReportRun, ReportRunPage
from reports_web.services.csv_codec import CsvRecordReader


def total_pages_for(total_rows: int, take: int) -> int:
    return max(1, math.ceil(total_rows / max(1, take)))


def clamp_page_request(
    page: int | None,
    take: int | None,
    total_rows: int,
    *,
    default_take: int = 500,
    max_take: int = 5000,
) -> tuple[int, int]:
    """Caller-side clamping: take into [1, max_take], page into [1, total_pages]."""
    take = default_take if not take or take <= 0 else take
    take = min(max(1, take), max(1, max_take))
    page = 1 if not page or page <= 0 else page
    page = min(page, total_pages_for(total_rows, take))
    return page, take


def get_run_page(run: ReportRun, page: int, take: int) -> ReportRunPage:
    """
    Decodes one page of a run's artifact. The page number is used as given;
    pages past the end simply come back without rows.
    """
    take = max(1, take)
    total_rows = run.row_count
    total_pages = total_pages_for(total_rows, take)

    def empty(headers: tuple[str, ...] = ()) -> ReportRunPage:
        return ReportRunPage(
            page=page,
            take=take,
            total_rows=total_rows,
            total_pages=total_pages,
            from_row=0,
            to_row=0,
            has_content=False,
            headers=headers,
            rows=(),
        )

    if not run.file_bytes:
        return empty()

    # utf-8-sig tolerates artifacts written with a byte order mark
    stream = io.TextIOWrapper(io.BytesIO(run.file_bytes), encoding="utf-8-sig", errors="replace", newline="")
    reader = CsvRecordReader(stream)

    header = reader.read_record()
    if header is None:
        return empty()
    headers = tuple(header)

    for _ in range((page - 1) * take):
        if reader.read_record() is None:
            return empty(headers)

    rows: list[tuple[str, ...]] = []
    while len(rows) < take:
        record = reader.read_record()
        if record is None:
            break
        rows.append(tuple(record))

    from_row = 0 if total_rows == 0 else (page - 1) * take + 1
    to_row = min(page * take, total_rows)

    return ReportRunPage(
        page=page,
        take=take,
        total_rows=total_rows,
        total_pages=total_pages,
        from_row=from_row,
        to_row=to_row,
        has_content=True,
        headers=headers,
        rows=tuple(rows),
    )
