"""Flat-file mirror: a tabular snapshot of the record set.

The mirror is a derived projection regenerated in full after every
change; it is never patched in place.  Two formats are provided behind
the ``FlatFileMirror`` protocol:

- ``CsvFileMirror``  -- comma-separated text.
- ``XlsxFileMirror`` -- an Excel workbook with one sheet.

Both use the fixed columns in ``MIRROR_COLUMNS``.  ``create_mirror()``
picks the format from the file suffix.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

from openpyxl import Workbook, load_workbook

from .errors import RecordValidationError
from .file_handler import read_file_with_encoding, write_file_atomic
from .mapper import MIRROR_COLUMNS, mirror_fields
from .models import RecordInput
from .store.base import RecordStore

logger = logging.getLogger(__name__)

SHEET_TITLE = "Production Data"


class FlatFileMirror(Protocol):
    """Whole-snapshot reader/writer of a tabular record file."""

    path: Path

    def read(self) -> list[RecordInput]: ...

    def write(self, records: Sequence[RecordInput]) -> None: ...


def _rows_to_records(
    path: Path, header: Sequence[Any], rows: list[Sequence[Any]]
) -> list[RecordInput]:
    columns = [str(h).strip() if h is not None else "" for h in header]
    missing = [c for c in MIRROR_COLUMNS if c not in columns]
    if missing:
        raise RecordValidationError(
            f"{path.name}: missing columns {', '.join(missing)}"
        )

    records: list[RecordInput] = []
    # Row 1 is the header
    for line_no, row in enumerate(rows, start=2):
        values = {
            column: row[i] if i < len(row) else None
            for i, column in enumerate(columns)
        }
        if all(v in (None, "") for v in values.values()):
            continue
        try:
            records.append(mirror_fields.load(values))
        except RecordValidationError as exc:
            raise RecordValidationError(
                f"{path.name} row {line_no}: {exc}", field=exc.field
            ) from exc
    return records


def _record_row(record: RecordInput) -> list[Any]:
    values = mirror_fields.dump(record)
    return [values[column] for column in MIRROR_COLUMNS]


class CsvFileMirror:
    """Mirror stored as a CSV file.

    Args:
        path: Location of the CSV file.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> list[RecordInput]:
        """Parse the whole file.  A missing file reads as empty.

        Raises:
            RecordValidationError: On a missing column or an invalid row.
        """
        if not self.path.exists():
            return []
        content, _ = read_file_with_encoding(self.path)
        rows = list(csv.reader(io.StringIO(content)))
        if not rows:
            return []
        return _rows_to_records(self.path, rows[0], rows[1:])

    def write(self, records: Sequence[RecordInput]) -> None:
        """Regenerate the whole file atomically."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(MIRROR_COLUMNS)
        for record in records:
            writer.writerow(_record_row(record))
        write_file_atomic(self.path, buffer.getvalue())


class XlsxFileMirror:
    """Mirror stored as a single-sheet Excel workbook.

    Args:
        path: Location of the ``.xlsx`` file.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> list[RecordInput]:
        """Parse the first sheet.  A missing file reads as empty.

        Raises:
            RecordValidationError: On a missing column or an invalid row.
        """
        if not self.path.exists():
            return []
        wb = load_workbook(self.path, read_only=True, data_only=True)
        try:
            ws = wb[wb.sheetnames[0]]
            rows = [list(row) for row in ws.iter_rows(values_only=True)]
        finally:
            wb.close()
        if not rows:
            return []
        return _rows_to_records(self.path, rows[0], rows[1:])

    def write(self, records: Sequence[RecordInput]) -> None:
        """Regenerate the whole workbook atomically."""
        wb = Workbook()
        ws = wb.active
        ws.title = SHEET_TITLE
        ws.append(list(MIRROR_COLUMNS))
        for record in records:
            ws.append(_record_row(record))

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        os.close(fd)
        try:
            wb.save(tmp_path)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


def create_mirror(path: str | Path | None) -> FlatFileMirror | None:
    """Return the mirror for *path* by suffix, or ``None`` when unset."""
    if not path:
        return None
    path = Path(path)
    if path.suffix.lower() == ".xlsx":
        return XlsxFileMirror(path)
    return CsvFileMirror(path)


def refresh_mirror(mirror: FlatFileMirror | None, store: RecordStore) -> bool:
    """Regenerate *mirror* from the store's current contents.

    Write failures are logged and swallowed: the mirror is a projection
    and the store already holds the change.

    Returns:
        True if the mirror was written.
    """
    if mirror is None:
        return False
    records = store.get_all()
    try:
        mirror.write(records)
    except OSError as exc:
        logger.warning("Failed to refresh mirror %s: %s", mirror.path, exc)
        return False
    logger.debug("Mirror %s refreshed with %d records", mirror.path, len(records))
    return True
