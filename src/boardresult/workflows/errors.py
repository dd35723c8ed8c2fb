"""Failure taxonomy for result retrieval.

Every failure carries a short, display-ready ``message``; callers should show
that text rather than the exception type.
"""

from __future__ import annotations

from typing import Optional


class ResultError(Exception):
    """Base class for retrieval failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NetworkFailure(ResultError):
    """Transport-level failure: timeout, refused connection, DNS."""


class UpstreamFailure(ResultError):
    """The board site answered with an explicit error."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ParseFailure(ResultError):
    """The document was unrecognizable or declared that no result exists."""


class RetrievalFailure(ResultError):
    """Every strategy and fallback source was exhausted."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.last_error = last_error


__all__ = [
    "ResultError",
    "NetworkFailure",
    "UpstreamFailure",
    "ParseFailure",
    "RetrievalFailure",
]
