"""Whole-document JSON persistence with atomic replacement."""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any


class StoreError(Exception):
    """Base exception for store persistence errors."""


class StoreCorruptedError(StoreError):
    """Raised when a store document exists but cannot be parsed."""


def read_json(path: Path) -> Any | None:
    """Read a JSON document.

    Args:
        path: Document location.

    Returns:
        The parsed document, or None if the file does not exist.

    Raises:
        StoreCorruptedError: If the file exists but is not valid JSON or
            holds a bare ``null``.
        StoreError: If the file exists but cannot be read.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise StoreError(f"Cannot read {path}: {e}") from e

    try:
        document = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise StoreCorruptedError(f"Cannot parse {path}: {e}") from e

    # None is reserved for a missing file
    if document is None:
        raise StoreCorruptedError(f"{path} holds no document")
    return document


def write_json_atomic(path: Path, document: Any) -> None:
    """Replace a JSON document atomically.

    The document is written to a temporary file in the same directory and
    moved over the target, so readers see either the old or the new file.

    Args:
        path: Document location.
        document: JSON-serializable content.

    Raises:
        OSError: If writing or replacing fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(document, handle, indent=2, sort_keys=True)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
