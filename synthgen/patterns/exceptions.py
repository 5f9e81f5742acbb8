"""Exceptions raised by the pattern generator."""

from __future__ import annotations

from typing import Any, Dict, Optional


class PatternGenerationError(RuntimeError):
    """
    Raised when a stream cannot be generated from the given request.

    Attributes:
        context: Request data that triggered the failure
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


__all__ = ["PatternGenerationError"]
