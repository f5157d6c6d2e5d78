"""
File attachment storage for receipts, bank slips and budget documents.

Handles:
- Upload validation (size cap, allowed content types)
- Pluggable providers (Supabase object storage, Cloudinary CDN, in-memory)
- Ordered fallback: each provider is retried a few times, then the next is tried
- Deletion routed to the provider recorded next to the URL
"""

import hashlib
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from encore.config import Settings, settings
from encore.errors import DependencyError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class AttachmentFile:
    """An uploaded file held in memory."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StoredFile:
    """Location of a stored attachment."""

    url: str
    provider: str


def validate_upload(
    filename: str,
    content_type: str | None,
    data: bytes,
    max_bytes: int | None = None,
    allowed_types: list[str] | None = None,
) -> AttachmentFile:
    """Check an upload against the size cap and allowed content types.

    Raises:
        ValidationError: If the file is empty, too large or of a disallowed type
    """
    max_bytes = max_bytes if max_bytes is not None else settings.max_upload_bytes
    allowed_types = allowed_types or settings.allowed_upload_types

    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > max_bytes:
        raise ValidationError(f"File too large (limit {max_bytes} bytes)")
    if content_type not in allowed_types:
        raise ValidationError("Only .jpeg, .jpg, .png, and .pdf formats are allowed")

    return AttachmentFile(filename=filename or "upload", content_type=content_type, data=data)


def _object_name(file: AttachmentFile) -> str:
    return f"{int(time.time() * 1000)}-{file.filename}"


class StorageProvider(ABC):
    """Abstract base class for attachment storage backends."""

    name: str = "abstract"

    @abstractmethod
    def upload(self, file: AttachmentFile, folder: str) -> str:
        """Store a file and return its public URL."""

    @abstractmethod
    def delete(self, url: str) -> None:
        """Remove a previously stored file."""


class SupabaseStorageProvider(StorageProvider):
    """Primary provider: Supabase object storage over its REST API."""

    name = "supabase"

    def __init__(self, base_url: str, api_key: str, bucket: str, timeout: float = 30.0):
        if not base_url or not api_key:
            raise ValueError("Supabase storage requires SUPABASE_URL and SUPABASE_KEY")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.bucket = bucket
        self.timeout = timeout

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "apikey": self.api_key}

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    def upload(self, file: AttachmentFile, folder: str) -> str:
        path = f"{folder}/{_object_name(file)}"
        response = httpx.post(
            f"{self.base_url}/storage/v1/object/{self.bucket}/{path}",
            content=file.data,
            headers={**self._headers, "Content-Type": file.content_type, "x-upsert": "false"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return self.public_url(path)

    def delete(self, url: str) -> None:
        marker = f"/storage/v1/object/public/{self.bucket}/"
        if marker not in url:
            raise ValueError(f"Not a Supabase URL for bucket {self.bucket}: {url}")
        path = url.split(marker, 1)[1]
        response = httpx.request(
            "DELETE",
            f"{self.base_url}/storage/v1/object/{self.bucket}",
            json={"prefixes": [path]},
            headers=self._headers,
            timeout=self.timeout,
        )
        response.raise_for_status()


class CloudinaryStorageProvider(StorageProvider):
    """Secondary provider: Cloudinary CDN upload API."""

    name = "cloudinary"
    api_base = "https://api.cloudinary.com/v1_1"

    def __init__(
        self,
        cloud_name: str,
        upload_preset: str,
        api_key: str = "",
        api_secret: str = "",
        timeout: float = 30.0,
    ):
        if not cloud_name or not upload_preset:
            raise ValueError(
                "Cloudinary storage requires CLOUDINARY_CLOUD_NAME and CLOUDINARY_UPLOAD_PRESET"
            )
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout

    @staticmethod
    def _resource_type(content_type: str) -> str:
        # PDFs must go up as raw files, images as images
        return "raw" if content_type == "application/pdf" else "image"

    def upload(self, file: AttachmentFile, folder: str) -> str:
        resource_type = self._resource_type(file.content_type)
        response = httpx.post(
            f"{self.api_base}/{self.cloud_name}/{resource_type}/upload",
            data={"upload_preset": self.upload_preset, "folder": folder},
            files={"file": (_object_name(file), file.data, file.content_type)},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()["secure_url"]

    @staticmethod
    def resource_type_from_url(url: str) -> str:
        return "raw" if "/raw/upload/" in url else "image"

    @classmethod
    def public_id_from_url(cls, url: str) -> str:
        """Extract the public id from a delivery URL.

        The version segment is dropped. Image ids have no extension; raw ids keep it.
        """
        tail = url.split("/upload/", 1)[1]
        parts = tail.split("/")
        if parts and parts[0].startswith("v") and parts[0][1:].isdigit():
            parts = parts[1:]
        public_id = "/".join(parts)
        if cls.resource_type_from_url(url) == "image":
            public_id = public_id.rsplit(".", 1)[0]
        return public_id

    def delete(self, url: str) -> None:
        if not self.api_key or not self.api_secret:
            raise ValueError("Cloudinary deletion requires CLOUDINARY_API_KEY and secret")
        resource_type = self.resource_type_from_url(url)
        public_id = self.public_id_from_url(url)
        timestamp = str(int(time.time()))
        signature = hashlib.sha1(
            f"public_id={public_id}&timestamp={timestamp}{self.api_secret}".encode()
        ).hexdigest()
        response = httpx.post(
            f"{self.api_base}/{self.cloud_name}/{resource_type}/destroy",
            data={
                "public_id": public_id,
                "timestamp": timestamp,
                "api_key": self.api_key,
                "signature": signature,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()


class MemoryStorageProvider(StorageProvider):
    """In-memory provider for tests and local development.

    Set ``fail`` to make every upload raise, to exercise fallback paths.
    """

    def __init__(self, name: str = "memory", fail: bool = False):
        self.name = name
        self.fail = fail
        self.files: dict[str, AttachmentFile] = {}
        self.upload_calls = 0

    def upload(self, file: AttachmentFile, folder: str) -> str:
        self.upload_calls += 1
        if self.fail:
            raise ConnectionError(f"{self.name} storage unavailable")
        url = f"memory://{self.name}/{folder}/{_object_name(file)}"
        self.files[url] = file
        return url

    def delete(self, url: str) -> None:
        self.files.pop(url, None)


class AttachmentStorage:
    """Ordered list of providers tried in sequence behind one interface."""

    def __init__(
        self,
        providers: list[StorageProvider],
        max_attempts: int = 2,
        retry_delay: float = 0.5,
    ):
        if not providers:
            raise ValueError("At least one storage provider is required")
        self.providers = providers
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay

    def store(self, file: AttachmentFile, folder: str = "general") -> StoredFile:
        """Store a file with the first provider that succeeds.

        Raises:
            DependencyError: If every provider failed after its retries
        """
        last_error: Exception | None = None
        for provider in self.providers:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    url = provider.upload(file, folder)
                    logger.info(
                        "Stored attachment %s via %s (attempt %d)",
                        file.filename,
                        provider.name,
                        attempt,
                    )
                    return StoredFile(url=url, provider=provider.name)
                except Exception as e:
                    last_error = e
                    logger.warning(
                        "Upload attempt %d/%d to %s failed: %s",
                        attempt,
                        self.max_attempts,
                        provider.name,
                        e,
                    )
                    if attempt < self.max_attempts and self.retry_delay > 0:
                        time.sleep(self.retry_delay * 2 ** (attempt - 1))
            logger.error("Storage provider %s exhausted, trying next provider", provider.name)

        raise DependencyError("File upload failed", error=str(last_error) if last_error else None)

    def delete(self, url: str, provider_name: str | None) -> bool:
        """Delete a stored file via the provider that stored it.

        Returns:
            True if deleted, False if the provider is unknown or deletion failed
        """
        provider = next((p for p in self.providers if p.name == provider_name), None)
        if provider is None:
            logger.warning("No storage provider '%s' configured to delete %s", provider_name, url)
            return False
        try:
            provider.delete(url)
            logger.info("Deleted attachment %s via %s", url, provider.name)
            return True
        except Exception as e:
            logger.error("Failed to delete attachment %s via %s: %s", url, provider.name, e)
            return False


def build_provider(name: str, config: Settings) -> StorageProvider:
    """Create a provider by name from settings."""
    if name == "supabase":
        return SupabaseStorageProvider(
            config.supabase_url, config.supabase_key, config.supabase_bucket
        )
    if name == "cloudinary":
        return CloudinaryStorageProvider(
            config.cloudinary_cloud_name,
            config.cloudinary_upload_preset,
            config.cloudinary_api_key,
            config.cloudinary_api_secret,
        )
    if name == "memory":
        return MemoryStorageProvider()
    raise ValueError(f"Unknown storage provider: {name}")


def build_storage(config: Settings) -> AttachmentStorage:
    """Build the storage chain from settings, skipping unconfigured providers."""
    providers: list[StorageProvider] = []
    for name in config.storage_providers:
        try:
            providers.append(build_provider(name, config))
        except ValueError as e:
            logger.warning("Storage provider %s disabled: %s", name, e)
    if not providers:
        logger.warning("No storage provider configured, falling back to in-memory storage")
        providers.append(MemoryStorageProvider())
    return AttachmentStorage(
        providers,
        max_attempts=config.storage_max_attempts,
        retry_delay=config.storage_retry_delay_seconds,
    )


# Global storage instance (initialized lazily from settings)
_storage_instance: Optional[AttachmentStorage] = None


def init_attachment_storage(storage: AttachmentStorage) -> None:
    """Replace the global attachment storage (used by app startup and tests)."""
    global _storage_instance
    _storage_instance = storage


def get_attachment_storage() -> AttachmentStorage:
    """Get the global attachment storage, building it from settings on first use."""
    global _storage_instance
    if _storage_instance is None:
        _storage_instance = build_storage(settings)
    return _storage_instance


__all__ = [
    "AttachmentFile",
    "StoredFile",
    "StorageProvider",
    "SupabaseStorageProvider",
    "CloudinaryStorageProvider",
    "MemoryStorageProvider",
    "AttachmentStorage",
    "validate_upload",
    "build_storage",
    "init_attachment_storage",
    "get_attachment_storage",
]
