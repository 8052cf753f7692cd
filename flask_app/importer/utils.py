"""
Importer-specific utilities for handling uploaded files.
"""

from __future__ import annotations

from typing import Iterable

CSV_EXTENSIONS: tuple[str, ...] = ("csv", "txt")


def allowed_file(filename: str, allowed_extensions: Iterable[str] = CSV_EXTENSIONS) -> bool:
    """
    Validate the uploaded filename extension against the allowed set.
    """

    if not filename or "." not in filename:
        return False
    extension = filename.rsplit(".", 1)[1].lower()
    return extension in {ext.lower() for ext in allowed_extensions}
