"""
Exception hierarchy for the feedback storage subsystem.

Store CRUD calls report ordinary failures by returning None/False; the
exceptions below are reserved for conditions a caller must not mistake for
"not found".
"""

__all__ = [
    "BackChannelError",
    "PersistenceUnsupportedError",
    "StoreError",
    "PackageIntegrityError",
]


class BackChannelError(Exception):
    """Root exception for all backchannel errors."""


class PersistenceUnsupportedError(BackChannelError):
    """Raised when no persistence engine is available on this host."""


class StoreError(BackChannelError):
    """Raised when the persistence engine cannot be enumerated or read."""


class PackageIntegrityError(StoreError):
    """Raised when a store holds more than one package record."""

    def __init__(self, store_name: str, count: int):
        super().__init__(f"Store {store_name} holds {count} packages, expected at most one")
        self.store_name = store_name
        self.count = count
