import json
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional

from loguru import logger

from locker_rental.config.settings import Settings
from locker_rental.core.utils import ensure_aware, json_dumps, normalize_locker_id, utcnow
from locker_rental.schemas import Contact, SessionCredential


class SessionStore:
    """Client-side store of the renter's session credentials, keyed by locker id.

    The whole store is one JSON document, rewritten atomically on every
    change, so concurrent writers resolve last-writer-wins. Like a browser
    cookie, the document expires ``retention`` after its last write.
    """

    def __init__(
        self,
        path: Path,
        retention: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.path = Path(path)
        self.retention = retention
        self.clock = clock
        self._lock = Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionStore":
        return cls(
            settings.session_store_path,
            retention=timedelta(days=settings.session_retention_days),
        )

    def _read(self) -> Dict[str, SessionCredential]:
        if not self.path.exists():
            return {}

        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
            written_at = ensure_aware(datetime.fromisoformat(document["written_at"]))
            if self.clock() - written_at > self.retention:
                logger.info(f"Session store {self.path} older than {self.retention}, ignoring")
                return {}
            return {
                locker_id: SessionCredential.model_validate(record)
                for locker_id, record in document["sessions"].items()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Unreadable session store {self.path}, starting empty: {e}")
            return {}

    def _write(self, sessions: Dict[str, SessionCredential]) -> None:
        document = {
            "written_at": self.clock().isoformat(),
            "sessions": {
                locker_id: credential.model_dump(mode="json", exclude_none=True)
                for locker_id, credential in sessions.items()
            },
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(json_dumps(document))
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def save(
        self,
        locker_id: str,
        session_token: str,
        expires_at: datetime,
        contact: Optional[Contact] = None,
    ) -> SessionCredential:
        locker_id = normalize_locker_id(locker_id)
        contact = contact or Contact()
        credential = SessionCredential(
            locker_id=locker_id,
            session_token=session_token,
            rented_at=self.clock(),
            expires_at=expires_at,
            phone=contact.phone or None,
            email=contact.email or None,
        )

        with self._lock:
            sessions = self._read()
            sessions[locker_id] = credential
            self._write(sessions)

        logger.debug(f"Saved session for locker {locker_id}")
        return credential

    def get(self, locker_id: str) -> Optional[SessionCredential]:
        with self._lock:
            return self._read().get(normalize_locker_id(locker_id))

    def update_contact(self, locker_id: str, contact: Contact) -> Optional[SessionCredential]:
        locker_id = normalize_locker_id(locker_id)
        with self._lock:
            sessions = self._read()
            credential = sessions.get(locker_id)
            if credential is None:
                return None

            # never clear a stored value with an empty one
            updates = {}
            if contact.phone:
                updates["phone"] = contact.phone
            if contact.email:
                updates["email"] = contact.email

            credential = credential.model_copy(update=updates)
            sessions[locker_id] = credential
            self._write(sessions)

        return credential

    def extend(self, locker_id: str, new_expires_at: datetime) -> Optional[SessionCredential]:
        locker_id = normalize_locker_id(locker_id)
        with self._lock:
            sessions = self._read()
            credential = sessions.get(locker_id)
            if credential is None:
                return None

            credential = credential.model_copy(update={"expires_at": new_expires_at})
            sessions[locker_id] = credential
            self._write(sessions)

        logger.debug(f"Session for locker {locker_id} now expires at {new_expires_at}")
        return credential

    def remove(self, locker_id: str) -> None:
        locker_id = normalize_locker_id(locker_id)
        with self._lock:
            sessions = self._read()
            if sessions.pop(locker_id, None) is not None:
                self._write(sessions)

    def list_all(self) -> List[SessionCredential]:
        with self._lock:
            return list(self._read().values())
