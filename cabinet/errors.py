"""Exception hierarchy for Cyber Cabinet."""


class CabinetError(Exception):
    """Base class for all domain errors."""

    pass


class CompletionError(CabinetError):
    """Raised when a generation call fails."""

    pass


class RecordStoreError(CabinetError):
    """Raised when a durable record cannot be written or read."""

    pass


class MeetingStateError(CabinetError):
    """Raised when an operation is invalid for the meeting's status."""

    pass
