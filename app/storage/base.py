"""Base storage provider interface."""

from abc import ABC, abstractmethod


class StorageProvider(ABC):
    """Abstract storage provider for generated receipt artifacts."""

    @abstractmethod
    def save(self, key: str, content: bytes) -> str:
        """Store content under key. Returns key."""
        raise NotImplementedError

    @abstractmethod
    def open(self, key: str) -> bytes:
        """Return the content stored under key."""
        raise NotImplementedError

    @abstractmethod
    def exists(self, key: str) -> bool:
        raise NotImplementedError
