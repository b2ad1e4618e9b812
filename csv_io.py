"""CSV decoding of operation records and rendering of the account report."""

import csv
import io
from typing import IO, Iterable, Iterator, Optional

import structlog
from pydantic import ValidationError

from errors import RecordDecodeError
from models import AccountSnapshot, Operation, format_amount, operation_adapter

logger = structlog.get_logger()

REPORT_HEADER = ["client", "available", "held", "total", "locked"]


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(parts)


def decode_record(raw: dict, line: Optional[int] = None) -> Operation:
    """Decode one raw row (column name -> text) into a typed operation."""
    record = {}
    for key, value in raw.items():
        # csv.DictReader files surplus columns under the None key
        if key is None:
            continue
        record[key.strip()] = value.strip() if value is not None else ""

    try:
        return operation_adapter.validate_python(record)
    except ValidationError as e:
        raise RecordDecodeError(line, _describe(e)) from e


def read_operations(stream: IO[str], skip_malformed: bool = False) -> Iterator[Operation]:
    """Yield operations from a CSV stream in file order.

    An undecodable row raises RecordDecodeError, or is logged and skipped when
    ``skip_malformed`` is set.
    """
    reader = csv.DictReader(stream, skipinitialspace=True)

    while True:
        try:
            raw = next(reader)
        except StopIteration:
            return
        except (csv.Error, UnicodeDecodeError) as e:
            raise RecordDecodeError(reader.line_num, str(e)) from e

        try:
            yield decode_record(raw, line=reader.line_num)
        except RecordDecodeError as e:
            if not skip_malformed:
                raise
            logger.warning("Skipping malformed row", line=e.line, detail=e.detail)


def write_snapshot(rows: Iterable[AccountSnapshot], stream: IO[str]) -> None:
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(REPORT_HEADER)
    for row in rows:
        writer.writerow([
            row.client,
            format_amount(row.available),
            format_amount(row.held),
            format_amount(row.total),
            "true" if row.locked else "false",
        ])


def render_snapshot(rows: Iterable[AccountSnapshot]) -> str:
    buffer = io.StringIO()
    write_snapshot(rows, buffer)
    return buffer.getvalue()
