"""Error taxonomy for the scheduling core.

- ``EventValidationError``: local, field-by-field, never reaches the network
- ``TransportError``: a remote call failed (network error or non-2xx status)
- ``DataShapeError``: the remote service returned data we refuse to decode
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping

_MAX_MESSAGE_CHARS = 200


class ScheduleError(RuntimeError):
    """Base error raised by the scheduling core."""


class FieldErrors(Mapping[str, str]):
    """Read-only mapping of field name to a human-readable rejection reason.

    An empty instance means the candidate passed validation.
    """

    def __init__(self, errors: Mapping[str, str] | None = None) -> None:
        self._errors: dict[str, str] = dict(errors or {})

    def __getitem__(self, key: str) -> str:
        return self._errors[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __repr__(self) -> str:
        return f"FieldErrors({self._errors!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._errors) == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    @property
    def ok(self) -> bool:
        return not self._errors

    def describe(self) -> str:
        return "; ".join(f"{name}: {message}" for name, message in self._errors.items())


class EventValidationError(ScheduleError, ValueError):
    """Raised when a candidate event fails local validation."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = errors if isinstance(errors, FieldErrors) else FieldErrors(errors)
        super().__init__(f"Event failed validation: {self.errors.describe()}")


class TransportError(ScheduleError):
    """Raised when a request to the remote event service fails."""

    def __init__(self, *, status_code: int | None, message: str) -> None:
        self.status_code = status_code
        self.message = sanitize_message(message)
        if status_code is None:
            super().__init__(f"Event service request failed: {self.message}")
        else:
            super().__init__(f"Event service request failed ({status_code}): {self.message}")


class DataShapeError(ScheduleError):
    """Raised when a record from the remote service cannot be decoded."""


def sanitize_message(message: str) -> str:
    """Collapse whitespace, drop bearer tokens and truncate to 200 chars."""
    redacted = re.sub(r"(?i)\b(bearer)\s+[^\s,;]+", r"\1 [REDACTED]", message)
    normalized = " ".join(redacted.split())[:_MAX_MESSAGE_CHARS]
    return normalized or "Request failed without an error payload"
