"""Error state delivered to observers.

An observer's error callback always receives an :class:`ErrorSignal`.
A *cleared* signal is sent after every successful tick so observers that
display an error indicator can reset it; a *failure* signal carries a
human-readable message and the kind of failure.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, model_validator


class ErrorKind(StrEnum):
    CLEARED = "cleared"
    RESOLUTION = "resolution"
    FETCH = "fetch"
    UNEXPECTED = "unexpected"


class ErrorSignal(BaseModel):
    """Tagged error state: either cleared, or a failure with a message."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ErrorKind
    message: str | None = None

    @model_validator(mode="after")
    def _check_message(self) -> ErrorSignal:
        if self.kind == ErrorKind.CLEARED:
            if self.message is not None:
                raise ValueError("a cleared signal cannot carry a message")
        elif not self.message:
            raise ValueError(f"a {self.kind.value} signal requires a message")
        return self

    @classmethod
    def cleared(cls) -> ErrorSignal:
        return cls(kind=ErrorKind.CLEARED)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> ErrorSignal:
        return cls(kind=kind, message=message)

    @property
    def is_cleared(self) -> bool:
        return self.kind == ErrorKind.CLEARED
