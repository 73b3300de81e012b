from __future__ import annotations


class RelayError(Exception):
    """Base class for errors surfaced to the caller of a submission."""

    code = "RELAY_ERROR"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InvalidInput(RelayError):
    """A submission was rejected before any state was touched."""

    code = "INVALID_INPUT"


def require_id(value: str | None, field: str) -> str:
    if not isinstance(value, str) or not value:
        raise InvalidInput(f"{field} is required")
    return value


__all__ = ["RelayError", "InvalidInput", "require_id"]
