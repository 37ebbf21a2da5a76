"""Credential store loaded from a `login:password` text file."""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple, Union

import structlog

from vecsum.exceptions import CredentialStoreError

logger = structlog.get_logger()

Login = Union[str, bytes]


def _as_bytes(value: Login) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


class CredentialStore:
    """
    In-memory login -> password map shared read-only by all sessions.

    File format is one `login:password` pair per line, split on the first
    colon. Lines without a colon or with an empty password are skipped.
    Surrounding spaces are part of the login and password.
    """

    def __init__(self, entries: Optional[Iterable[Tuple[Login, Login]]] = None):
        self._lock = threading.Lock()
        self._db: Dict[bytes, bytes] = {}
        if entries:
            self._db = {_as_bytes(login): _as_bytes(password) for login, password in entries}

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "CredentialStore":
        store = cls()
        store.load_from_file(path)
        return store

    def load_from_file(self, path: Union[str, Path]) -> int:
        """
        Replace the store contents with the pairs in path.

        Returns:
            Number of credentials loaded

        Raises:
            CredentialStoreError: file cannot be opened or read
        """
        try:
            raw = Path(path).read_bytes()
        except OSError as e:
            raise CredentialStoreError(
                f"Cannot open clients DB: {path}",
                details={"path": str(path), "error": str(e)},
            )

        db: Dict[bytes, bytes] = {}
        skipped = 0
        for line in raw.splitlines():
            if not line:
                continue
            login, sep, password = line.partition(b":")
            if not sep or not password:
                skipped += 1
                continue
            db[login] = password

        with self._lock:
            self._db = db

        logger.info("credentials_loaded", path=str(path), count=len(db), skipped=skipped)
        return len(db)

    def lookup(self, login: Login) -> Optional[bytes]:
        """Return the password for login, or None when unknown."""
        with self._lock:
            db = self._db
        return db.get(_as_bytes(login))

    def __contains__(self, login: Login) -> bool:
        return self.lookup(login) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._db)
