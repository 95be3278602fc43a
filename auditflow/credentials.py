"""
auditflow - Credential persistence.

The credential store is the only mutable state shared between the session
manager and in-flight API calls. Every write, including multi-key writes,
happens under a lock so a concurrent read never observes half an update.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional, Union

from .exceptions import CredentialStoreError
from .models import TokenPair

logger = logging.getLogger("auditflow.credentials")

ACCESS_TOKEN_KEY = "userToken"
REFRESH_TOKEN_KEY = "refreshToken"


class CredentialStore:
    """
    Base class for key/value credential storage.

    Subclasses implement ``_load`` and ``_save``; locking and the token
    helpers live here.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()

    def _load(self) -> dict[str, str]:
        raise NotImplementedError

    def _save(self, data: dict[str, str]) -> None:
        raise NotImplementedError

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def remove(self, key: str) -> None:
        self.remove_many([key])

    def set_many(self, values: dict[str, str]) -> None:
        with self._lock:
            data = self._load()
            data.update(values)
            self._save(data)

    def remove_many(self, keys: list[str]) -> None:
        with self._lock:
            data = self._load()
            changed = False
            for key in keys:
                if key in data:
                    del data[key]
                    changed = True
            if changed:
                self._save(data)

    # ==================== Token helpers ====================

    @property
    def access_token(self) -> Optional[str]:
        return self.get(ACCESS_TOKEN_KEY)

    @property
    def refresh_token(self) -> Optional[str]:
        return self.get(REFRESH_TOKEN_KEY)

    def save_tokens(self, tokens: TokenPair) -> None:
        """Persist a token pair; a missing refresh token keeps the stored one."""
        values = {ACCESS_TOKEN_KEY: tokens.access}
        if tokens.refresh:
            values[REFRESH_TOKEN_KEY] = tokens.refresh
        self.set_many(values)

    def clear_tokens(self) -> None:
        self.remove_many([ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY])


class MemoryCredentialStore(CredentialStore):
    """Credential store that lives for the lifetime of the process."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        super().__init__()
        self._data: dict[str, str] = dict(initial or {})

    def _load(self) -> dict[str, str]:
        return dict(self._data)

    def _save(self, data: dict[str, str]) -> None:
        self._data = dict(data)


class FileCredentialStore(CredentialStore):
    """
    Credential store backed by a JSON file, durable across restarts.

    Writes go to a temporary file in the same directory which then replaces
    the original, so a crash mid-write leaves the previous contents intact.
    A missing file reads as empty; an unreadable one is logged and treated
    as empty so a corrupt store degrades to "not logged in".
    """

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__()
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise CredentialStoreError(f"Cannot read credentials from {self.path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Credential file %s is corrupt, ignoring it", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Credential file %s has unexpected shape, ignoring it", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _save(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".credentials-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh)
                os.chmod(tmp_path, 0o600)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise CredentialStoreError(f"Cannot write credentials to {self.path}: {e}") from e
