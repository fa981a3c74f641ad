"""Local JSON documents: token record, OAuth state nonce, chat filters.

Each concern owns one file. Writes go through a temp file and ``os.replace``
so a crash mid-write never leaves a truncated document behind. The files are
single-writer; there is no locking.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from toaster.shared.models.token import AuthorizationState, TokenRecord

logger = logging.getLogger(__name__)


class JsonFileStore:
    """Reads and writes one JSON document."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> dict[str, Any] | None:
        """Return the stored document, or None if absent or unreadable."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Cannot read {self.path.name}: {e}")
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed {self.path.name}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Ignoring {self.path.name}: expected an object")
            return None
        return data

    def write(self, document: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f"{self.path.name}.tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(document, fh, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, self.path)

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)


class CredentialStore:
    """Persists a TokenRecord byte-for-byte; no business logic."""

    def __init__(self, path: Path) -> None:
        self._file = JsonFileStore(path)

    @property
    def path(self) -> Path:
        return self._file.path

    def exists(self) -> bool:
        return self._file.exists()

    def load(self) -> TokenRecord | None:
        data = self._file.read()
        if data is None:
            return None
        return TokenRecord.from_dict(data)

    def save(self, record: TokenRecord) -> None:
        self._file.write(record.to_dict())

    def delete(self) -> None:
        self._file.delete()


class StateStore:
    """Holds the single outstanding OAuth state nonce."""

    def __init__(self, path: Path) -> None:
        self._file = JsonFileStore(path)

    def load(self) -> AuthorizationState | None:
        data = self._file.read()
        if data is None:
            return None
        return AuthorizationState.from_dict(data)

    def save(self, state: AuthorizationState) -> None:
        self._file.write(state.to_dict())

    def delete(self) -> None:
        self._file.delete()
