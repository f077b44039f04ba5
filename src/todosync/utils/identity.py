"""Positional identifiers for detected marker comments."""

from __future__ import annotations

import hashlib

ID_LENGTH = 12


def generate_id(file_path: str, line_number: int, *, length: int = ID_LENGTH) -> str:
    """Derive a short, deterministic id from a file path and 0-based line number.

    The id is positional: the same comment moved to another line gets a new id.
    """
    digest = hashlib.md5(f"{file_path}:{line_number}".encode("utf-8")).hexdigest()
    return digest[:length]
