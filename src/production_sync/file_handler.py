"""Encoding-aware reads and atomic writes.

Used by the JSON-backed store, the spreadsheet mirror and the persisted
sync status.  Whole-file writes go to a temp file next to the target
and are moved into place with ``os.replace()``; readers see either the
old or the new file, never a torn one.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from charset_normalizer import from_bytes

UTF8_BOM = "\ufeff"


# =============================================================================
# Reading
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a text file whose encoding is not known in advance.

    UTF-8 (with or without the byte-order mark spreadsheet tools add) is
    tried first.  Anything else is handed to charset-normalizer; if it
    cannot decide, the bytes are decoded as UTF-8 with replacement.

    Returns:
        Tuple of (content without BOM, encoding name).
    """
    raw = path.read_bytes()
    try:
        return raw.decode("utf-8").removeprefix(UTF8_BOM), "utf-8"
    except UnicodeDecodeError:
        pass

    best = from_bytes(raw).best()
    if best is None:
        return raw.decode("utf-8", errors="replace"), "utf-8"
    return str(best).removeprefix(UTF8_BOM), best.encoding


def read_json(path: Path, default: Any = None) -> Any:
    """Parsed JSON at *path*, or *default* when there is no such file."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return default
    return json.loads(text)


# =============================================================================
# Writing
# =============================================================================


def write_file_atomic(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Replace *path* with *content* in one step.

    Parent directories are created.  On failure the temp file is
    removed and the previous file, if any, is left untouched.

    Returns:
        Number of bytes written.
    """
    data = content.encode(encoding)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = tempfile.NamedTemporaryFile(
        "wb", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
    )
    try:
        with tmp:
            tmp.write(data)
        os.replace(tmp.name, path)
    except BaseException:
        Path(tmp.name).unlink(missing_ok=True)
        raise
    return len(data)


def write_json_atomic(path: Path, data: Any) -> None:
    """Serialize *data* as indented JSON and write it atomically."""
    write_file_atomic(path, json.dumps(data, indent=2, default=str) + "\n")


def append_json_line(path: Path, data: Any) -> None:
    """Append one JSON document as a single line to *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(json.dumps(data, default=str) + "\n")


def read_json_lines(path: Path) -> list[Any]:
    """Read every non-empty line of a JSON-lines file."""
    if not path.exists():
        return []
    with open(path, encoding="utf-8") as fh:
        return [json.loads(line) for line in fh if line.strip()]
