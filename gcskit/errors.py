"""Error types raised by bucket operations."""

from __future__ import annotations


class ApiError(Exception):
    """An HTTP-level error reported by the storage service."""

    def __init__(self, code: int, message: str = "", body: str = "") -> None:
        super().__init__(code, message)
        self.code = code
        self.message = message
        self.body = body

    def __str__(self) -> str:
        if self.message:
            return f"HTTP {self.code}: {self.message}"
        return f"HTTP {self.code}"


class NotFoundError(Exception):
    """An object name, or a particular generation of it, was not found."""

    def __init__(self, err: BaseException | str) -> None:
        super().__init__(err)
        self.err = err

    def __str__(self) -> str:
        return f"NotFoundError: {self.err}"


class PreconditionError(Exception):
    """A precondition attached to a request failed."""

    def __init__(self, err: BaseException | str) -> None:
        super().__init__(err)
        self.err = err

    def __str__(self) -> str:
        return f"PreconditionError: {self.err}"