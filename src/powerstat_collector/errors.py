"""Exception hierarchy for MSR sampling and core selection."""

from __future__ import annotations


class MsrError(Exception):
    """Base class for every error raised by this package."""


class RangeError(MsrError, ValueError):
    """An identifier specification could not be turned into a set of IDs."""


class FormatError(RangeError):
    """A token is malformed or a range is empty/inverted."""

    def __init__(self, message: str, token: str) -> None:
        super().__init__(message)
        self.token = token


class CapacityError(RangeError):
    """The expanded identifier list exceeds the supported maximum."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"requested number of IDs exceeds max size {limit}")
        self.limit = limit


class ResourceUnavailableError(MsrError):
    """A register source is missing or cannot be opened."""


class ReadFailureError(MsrError):
    """I/O error, short read or unparsable value.

    *offset* is the register address, or ``None`` for non-register sources.
    """

    def __init__(self, offset: int | None, reason: str) -> None:
        if offset is None:
            super().__init__(reason)
        else:
            super().__init__(f"failed to read register 0x{offset:X}: {reason}")
        self.offset = offset


class UnknownRegisterError(MsrError):
    """A named register is not in the lookup table."""

    def __init__(self, name: str) -> None:
        super().__init__(f"unknown MSR name {name!r}")
        self.name = name


class CancelledError(MsrError):
    """A read was abandoned because a sibling read failed."""

    def __init__(self, offset: int) -> None:
        super().__init__(f"read of register 0x{offset:X} cancelled")
        self.offset = offset


class CoreReadError(MsrError):
    """Refreshing one core failed; ``__cause__`` holds the underlying error."""

    def __init__(self, core: int, cause: BaseException) -> None:
        super().__init__(f"error reading MSR data for core {core}: {cause}")
        self.core = core
