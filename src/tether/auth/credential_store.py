"""Key/value persistence for sign-in credentials.

:class:`Persistence` is the accessor the :class:`~tether.auth.login.LoginModel`
reads the ``"token"`` key from. Two implementations are provided:

- :class:`CredentialStore` -- one JSON file per profile in
  ``~/.local/share/tether/credentials/<profile>.json`` (XDG) or the
  platform-equivalent directory. Files are written atomically with
  ``0o600`` permissions so that secrets are never world-readable, even
  momentarily.
- :class:`MemoryPersistence` -- a process-local dict, for embedding hosts
  that manage storage themselves and for tests.
"""

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from tether.config import _atomic_write, get_data_dir


class Persistence(ABC):
    """String key/value accessor for persisted credentials."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or ``None`` if absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete *key*. No-op when it is absent."""
        ...


class MemoryPersistence(Persistence):
    """In-memory :class:`Persistence`."""

    def __init__(self, values: Optional[dict[str, str]] = None) -> None:
        self._values: dict[str, str] = dict(values or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)


class CredentialFile(BaseModel):
    """On-disk shape of a profile's credential file.

    Attributes:
        values: The stored key/value pairs (``token``, ``secret``, ...).
        updated_at: UTC time of the last write.
    """

    values: dict[str, str] = Field(default_factory=dict)
    updated_at: Optional[datetime] = Field(default=None, description="Time of the last write")


def _credentials_dir() -> Path:
    """Return the credentials directory, creating it if needed."""
    path = get_data_dir() / "credentials"
    path.mkdir(parents=True, exist_ok=True)
    return path


class CredentialStore(Persistence):
    """File-backed :class:`Persistence` for a single profile.

    Every write rewrites the whole file atomically. An unreadable or corrupt
    file reads as empty, so a damaged store degrades to "not authenticated"
    rather than an error.

    Args:
        profile_name: The profile identifier used to derive the file name.

    Example::

        store = CredentialStore("work")
        store.set("token", "tok123")
        assert store.get("token") == "tok123"
    """

    def __init__(self, profile_name: str) -> None:
        self._profile_name = profile_name
        self._path = _credentials_dir() / f"{profile_name}.json"
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """The filesystem path to this profile's credential file."""
        return self._path

    @property
    def profile_name(self) -> str:
        return self._profile_name

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().values.get(key)

    def set(self, key: str, value: str) -> None:
        """Store *value* under *key*.

        Raises:
            OSError: If the file cannot be written (permissions, disk full, etc.).
        """
        with self._lock:
            data = self._load()
            data.values[key] = value
            self._save(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data.values:
                del data.values[key]
                self._save(data)

    def clear(self) -> None:
        """Delete the credential file if it exists."""
        with self._lock:
            if self._path.is_file():
                self._path.unlink()

    def _load(self) -> CredentialFile:
        if not self._path.is_file():
            return CredentialFile()
        try:
            text = self._path.read_text(encoding="utf-8")
            return CredentialFile.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValueError, OSError):
            return CredentialFile()

    def _save(self, data: CredentialFile) -> None:
        data.updated_at = datetime.now(timezone.utc)
        text = json.dumps(data.model_dump(mode="json"), indent=2) + "\n"
        _atomic_write(self._path, text, mode=0o600)
