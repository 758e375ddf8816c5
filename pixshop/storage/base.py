from abc import ABC, abstractmethod


class Storage(ABC):
    @abstractmethod
    def public_url(self, key: str) -> str:
        """Telegram-fetchable reference for a stored content key."""
        raise NotImplementedError


class PublicUrlStorage(Storage):
    """Object storage exposed under a public URL prefix (bucket/CDN)."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    def public_url(self, key: str) -> str:
        # Full URLs and Telegram file_ids pass through untouched
        if key.startswith(("http://", "https://")) or not self.base_url:
            return key
        if "/" not in key and "." not in key:
            return key
        return f"{self.base_url}/{key.lstrip('/')}"
