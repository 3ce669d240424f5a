"""Error taxonomy shared by ingestion and retrieval."""

from __future__ import annotations

import threading


class ValidationError(ValueError):
    """Rejected input, raised before any I/O happens."""


class DocumentNotFoundError(FileNotFoundError):
    """The file to parse or index does not exist."""


class OperationCancelled(RuntimeError):
    """The caller cancelled an in-flight operation."""


def raise_if_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("operation cancelled")


__all__ = ["ValidationError", "DocumentNotFoundError", "OperationCancelled", "raise_if_cancelled"]
