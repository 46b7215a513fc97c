from __future__ import annotations


class InvalidConfig(ValueError):
    """Raised at construction time when scan or buffer parameters are unusable."""


class BufferInvariantError(RuntimeError):
    """The ring buffer write cursor left [0, capacity); indicates a logic defect."""
