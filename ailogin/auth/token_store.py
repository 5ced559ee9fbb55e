"""Pluggable token storage backends.

Every backend persists one ``OAuthStorageData`` document keyed by
provider id. Writes rewrite the whole document; reads that fail for
any reason yield an empty document so a corrupt file never blocks
sign-in. Provides the TokenStore ABC and JSON file, in-memory and OS
keyring implementations.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ..exceptions import StorageError
from ..models import OAuthStorageData, StoredProviderData


if TYPE_CHECKING:
    from ..config import StoreSettings


logger = logging.getLogger("ailogin.auth")


class TokenStore(ABC):
    """Abstract base class for OAuth token storage.

    Subclasses move serialized documents in and out of their medium;
    validation and the read-modify-write helpers live here. An
    ``asyncio.Lock`` serializes read-modify-write cycles on one
    instance; separate instances sharing a medium are last-write-wins.
    """

    def __init__(self) -> None:
        """Initialize the token store."""
        self._lock = asyncio.Lock()

    @property
    @abstractmethod
    def location(self) -> str:
        """Human-readable description of where tokens are stored."""

    @abstractmethod
    async def _read_raw(self) -> str | None:
        """Return the serialized document, or None if there is none."""

    @abstractmethod
    async def _write_raw(self, payload: str) -> None:
        """Replace the serialized document.

        Raises
        ------
        StorageError
            If the document could not be written.
        """

    async def _load_unlocked(self) -> OAuthStorageData:
        try:
            raw = await self._read_raw()
        except StorageError as exc:
            logger.warning("Token store unreadable, treating as empty: %s", exc)
            return OAuthStorageData()
        if not raw:
            return OAuthStorageData()
        try:
            return OAuthStorageData.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning(
                "Token store at %s is malformed, treating as empty (%d errors)",
                self.location,
                exc.error_count(),
            )
            return OAuthStorageData()

    async def _save_unlocked(self, data: OAuthStorageData) -> None:
        payload = json.dumps(data.model_dump(by_alias=True, exclude_none=True), indent=2)
        await self._write_raw(payload)

    async def load(self) -> OAuthStorageData:
        """Load the whole document (empty when missing or unreadable)."""
        async with self._lock:
            return await self._load_unlocked()

    async def save(self, data: OAuthStorageData) -> None:
        """Replace the whole document.

        Raises
        ------
        StorageError
            If the document could not be written.
        """
        async with self._lock:
            await self._save_unlocked(data)

    async def get_provider(self, provider_id: str) -> StoredProviderData | None:
        """Return the record stored for ``provider_id``, if any."""
        data = await self.load()
        return data.providers.get(provider_id)

    async def save_provider(self, provider_id: str, record: StoredProviderData) -> None:
        """Insert or replace the record for ``provider_id``.

        Records of other providers, including ones no longer
        registered, are written back unchanged.
        """
        async with self._lock:
            data = await self._load_unlocked()
            data.providers[provider_id] = record
            await self._save_unlocked(data)

    async def remove_provider(self, provider_id: str) -> bool:
        """Delete the record for ``provider_id``.

        Returns
        -------
        bool
            True if a record was removed. Removing a missing record
            does not write.
        """
        async with self._lock:
            data = await self._load_unlocked()
            if data.providers.pop(provider_id, None) is None:
                return False
            await self._save_unlocked(data)
            return True


class JsonFileTokenStore(TokenStore):
    """Token store backed by a local JSON document.

    The file is replaced atomically (temp file + ``os.replace``) and
    created with mode 0600.

    Parameters
    ----------
    path : str or Path
        Location of the JSON document.
    """

    def __init__(self, path: str | Path) -> None:
        """Initialize the file token store."""
        super().__init__()
        self.path = Path(path).expanduser()

    @property
    def location(self) -> str:
        """The document path."""
        return str(self.path)

    async def _read_raw(self) -> str | None:
        return await asyncio.to_thread(self._read_file)

    def _read_file(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"Could not read {self.path}: {exc}"
            raise StorageError(msg, path=str(self.path)) from exc

    async def _write_raw(self, payload: str) -> None:
        await asyncio.to_thread(self._write_file, payload)

    def _write_file(self, payload: str) -> None:
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            msg = f"Could not write {self.path}: {exc}"
            raise StorageError(msg, path=str(self.path)) from exc
        finally:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)


class MemoryTokenStore(TokenStore):
    """In-memory token store for tests and ephemeral sessions.

    Holds the serialized document so reads and writes go through the
    same validation as the persistent backends.
    """

    def __init__(self, initial: OAuthStorageData | None = None) -> None:
        """Initialize the memory token store."""
        super().__init__()
        self._payload: str | None = None
        if initial is not None:
            self._payload = json.dumps(initial.model_dump(by_alias=True, exclude_none=True))

    @property
    def location(self) -> str:
        """Always ``"memory"``."""
        return "memory"

    async def _read_raw(self) -> str | None:
        return self._payload

    async def _write_raw(self, payload: str) -> None:
        self._payload = payload


class KeyringTokenStore(TokenStore):
    """OS keyring-backed token store (encrypted at rest by the OS).

    The whole document is kept as one keyring entry.

    Requires the ``keyring`` package: ``pip install ailogin[keyring]``

    Parameters
    ----------
    service_name : str
        Service name for keyring storage (default "ailogin-oauth").
    entry_name : str
        Entry (user) name holding the document (default "oauth").
    """

    def __init__(self, service_name: str = "ailogin-oauth", entry_name: str = "oauth") -> None:
        """Initialize the keyring token store."""
        try:
            import keyring as _keyring
            import keyring.errors as _keyring_errors
        except ImportError:
            msg = "Install keyring for OS credential storage: pip install ailogin[keyring]"
            raise ImportError(msg) from None
        super().__init__()
        self._service_name = service_name
        self._entry_name = entry_name
        self._keyring = _keyring
        self._keyring_error: type[Exception] = _keyring_errors.KeyringError

    @property
    def location(self) -> str:
        """The keyring service and entry."""
        return f"keyring:{self._service_name}/{self._entry_name}"

    async def _read_raw(self) -> str | None:
        try:
            return await asyncio.to_thread(
                self._keyring.get_password, self._service_name, self._entry_name
            )
        except self._keyring_error as exc:
            msg = f"Could not read keyring entry: {exc}"
            raise StorageError(msg, path=self.location) from exc

    async def _write_raw(self, payload: str) -> None:
        try:
            await asyncio.to_thread(
                self._keyring.set_password, self._service_name, self._entry_name, payload
            )
        except self._keyring_error as exc:
            msg = f"Could not write keyring entry: {exc}"
            raise StorageError(msg, path=self.location) from exc


def create_token_store(settings: StoreSettings, **kwargs: Any) -> TokenStore:
    """Factory function for token stores.

    Parameters
    ----------
    settings : StoreSettings
        Store configuration (backend, path, keyring service).
    **kwargs : Any
        Overrides: ``path`` for the file backend, ``service_name`` for
        the keyring backend.

    Returns
    -------
    TokenStore
        A new store instance.
    """
    backend = settings.backend
    if backend == "file":
        return JsonFileTokenStore(kwargs.get("path", settings.path))
    if backend == "memory":
        return MemoryTokenStore()
    if backend == "keyring":
        return KeyringTokenStore(service_name=kwargs.get("service_name", settings.keyring_service))

    msg = f"Unknown token store backend: {backend}"
    raise ValueError(msg)
