"""Error taxonomy for input-contract violations."""

from __future__ import annotations


class ParityAllocatorError(Exception):
    """Base class for errors raised by :mod:`parity_allocator`."""


class ValidationError(ParityAllocatorError, ValueError):
    """Raised when inputs violate a documented contract (shape, length, budgets)."""


class InsufficientDataError(ValidationError):
    """Raised when a price series holds fewer than two usable observations."""


__all__ = ["ParityAllocatorError", "ValidationError", "InsufficientDataError"]
