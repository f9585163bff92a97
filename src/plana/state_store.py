from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Generic, TypeVar

import anyio
import msgspec

T = TypeVar("T")


def atomic_write_bytes(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class JsonStateStore(Generic[T]):
    """A JSON document mirrored in memory and written through on change.

    Subclasses keep their own in-memory structure, mutate it while holding
    ``self._lock`` and call ``_save_locked()`` before releasing the lock, so
    two flushes of the same store never interleave. A missing or unreadable
    file loads as ``None`` and the subclass starts empty.
    """

    def __init__(
        self,
        path: Path,
        *,
        state_type: Any,
        log_prefix: str,
        logger: Any,
    ) -> None:
        self._path = path
        self._state_type = state_type
        self._log_prefix = log_prefix
        self._logger = logger
        self._lock = anyio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_document(self) -> T | None:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            self._logger.debug(f"{self._log_prefix}.missing", path=str(self._path))
            return None
        except OSError as exc:
            self._logger.warning(
                f"{self._log_prefix}.load_failed",
                path=str(self._path),
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None
        try:
            return msgspec.json.decode(raw, type=self._state_type)
        except msgspec.DecodeError as exc:
            self._logger.warning(
                f"{self._log_prefix}.invalid",
                path=str(self._path),
                error=str(exc),
            )
            return None

    def _save_locked(self, document: T) -> bool:
        payload = msgspec.json.encode(document)
        try:
            atomic_write_bytes(self._path, payload)
        except OSError as exc:
            self._logger.warning(
                f"{self._log_prefix}.save_failed",
                path=str(self._path),
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return False
        return True
