"""
DL Auth SDK Session Storage Implementations

Secret stores hold exactly one serialized session blob under a fixed key.
Failures are reported as CustomError.
"""

import base64
import binascii
import json
import os
import threading
from pathlib import Path
from typing import Dict, Optional

from .errors import CustomError
from .types import Session

SESSION_STORAGE_KEY = "current_session"


def serialize_session(session: Session) -> bytes:
    """Serialize a session to the persisted JSON format."""
    return json.dumps(session.to_dict()).encode("utf-8")


def deserialize_session(data: bytes) -> Session:
    """
    Parse a persisted session blob.

    Raises:
        CustomError: If the blob is not a valid session.
    """
    try:
        return Session.from_dict(json.loads(data))
    except (KeyError, TypeError, ValueError) as e:
        raise CustomError(f"Failed to read stored session: {e}", e) from e


class MemorySecretStore:
    """In-memory store (default, non-persistent)."""

    def __init__(self, key: str = SESSION_STORAGE_KEY) -> None:
        self._key = key
        self._items: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def save(self, data: bytes) -> None:
        with self._lock:
            self._items[self._key] = bytes(data)

    def load(self) -> Optional[bytes]:
        with self._lock:
            return self._items.get(self._key)

    def delete(self) -> None:
        with self._lock:
            self._items.pop(self._key, None)


class FileSecretStore:
    """File-based store (persistent across restarts)."""

    def __init__(self, file_path: Optional[str] = None, key: str = SESSION_STORAGE_KEY) -> None:
        """
        Initialize file storage.

        Args:
            file_path: Path to the session file. Defaults to
                ~/.dl_auth/<key>.json
            key: Storage key the blob is filed under.
        """
        if file_path:
            self._file_path = Path(file_path)
        else:
            self._file_path = Path.home() / ".dl_auth" / f"{key}.json"

        self._key = key
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        return self._file_path

    def save(self, data: bytes) -> None:
        payload = {self._key: base64.b64encode(data).decode("ascii")}
        with self._lock:
            try:
                self._file_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self._file_path, "w") as f:
                    json.dump(payload, f)
                # Owner read/write only
                os.chmod(self._file_path, 0o600)
            except OSError as e:
                raise CustomError(f"Failed to save session: {e}", e) from e

    def load(self) -> Optional[bytes]:
        with self._lock:
            if not self._file_path.exists():
                return None
            try:
                with open(self._file_path, "r") as f:
                    payload = json.load(f)
            except (OSError, ValueError) as e:
                raise CustomError(f"Failed to load session: {e}", e) from e

        encoded = payload.get(self._key) if isinstance(payload, dict) else None
        if encoded is None:
            return None
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, TypeError) as e:
            raise CustomError(f"Failed to load session: {e}", e) from e

    def delete(self) -> None:
        with self._lock:
            try:
                self._file_path.unlink(missing_ok=True)
            except OSError as e:
                raise CustomError(f"Failed to delete session: {e}", e) from e


class EnvironmentSecretStore:
    """Environment variable based store (for serverless/containers)."""

    def __init__(self, var_name: str = "DL_AUTH_SESSION") -> None:
        self._var_name = var_name
        self._lock = threading.Lock()

    def save(self, data: bytes) -> None:
        with self._lock:
            os.environ[self._var_name] = base64.b64encode(data).decode("ascii")

    def load(self) -> Optional[bytes]:
        encoded = os.environ.get(self._var_name)
        if not encoded:
            return None
        try:
            return base64.b64decode(encoded, validate=True)
        except binascii.Error as e:
            raise CustomError(f"Failed to load session from ${self._var_name}: {e}", e) from e

    def delete(self) -> None:
        with self._lock:
            os.environ.pop(self._var_name, None)
