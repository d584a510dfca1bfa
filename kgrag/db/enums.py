"""
Status enums for documents and ingestion runs.

Values are stored as plain strings (VARCHAR) so that the claim query can
compare against literal 'PENDING' and NULL without a native enum cast.
"""

from enum import Enum


class KgStatus(str, Enum):
    """
    Knowledge-graph processing state of a document.

    Document lifecycle::

        (NULL) / PENDING -> PROCESSING -> COMPLETED
                                      |-> FAILED

    A NULL status is treated exactly like PENDING by the claim query.
    Neither FAILED nor PROCESSING rows are ever claimed again; re-running
    a document requires resetting its status explicitly.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        """COMPLETED and FAILED documents never transition again."""
        return self in {KgStatus.COMPLETED, KgStatus.FAILED}

    @property
    def is_claimable(self) -> bool:
        """Only PENDING documents (or unset ones) can be claimed."""
        return self == KgStatus.PENDING

    @classmethod
    def from_string(cls, value: str | None) -> "KgStatus | None":
        """
        Case-insensitive lookup; None or unknown values return None.

        Examples:
            KgStatus.from_string("completed")  -> KgStatus.COMPLETED
            KgStatus.from_string(None)         -> None
        """
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None

    @classmethod
    def values(cls) -> list[str]:
        """Return list of all valid status values."""
        return [member.value for member in cls]


class RunStatus(str, Enum):
    """Outcome of one ingestion job invocation (run history row)."""

    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self != RunStatus.STARTED

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]
