"""Error kinds raised by the scheduling services."""


class QuestVaultError(Exception):
    """Base class for all questvault errors."""


class NotFound(QuestVaultError, LookupError):
    """A referenced record does not exist."""

    def __init__(self, kind: str, record_id):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class InvalidTransition(QuestVaultError):
    """A state machine rejected the requested transition."""


class ValidationError(QuestVaultError, ValueError):
    """Malformed input."""


class StorageError(QuestVaultError):
    """The persistence layer failed. Callers decide whether to retry."""


class DuplicateRecord(StorageError):
    """A uniqueness constraint rejected the write."""


class ConcurrentUpdate(StorageError):
    """The record changed between read and write (version mismatch)."""
