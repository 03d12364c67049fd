from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ..errors import PersistenceError, SessionDecodeError, SessionNotFoundError
from ..util.paths import sessions_dir
from .codec import decode_session, encode_session
from .models import Session

logger = logging.getLogger(__name__)

SUFFIX = ".json"


@dataclass
class SessionStore:
    """One pretty-printed JSON file per session, named ``<id>.json``."""

    directory: Path

    @staticmethod
    def default() -> "SessionStore":
        return SessionStore(directory=sessions_dir())

    def path_for(self, session_id: str) -> Path:
        if not session_id or "/" in session_id or "\\" in session_id or session_id.startswith("."):
            raise PersistenceError(f"invalid session id: {session_id!r}")
        return self.directory / f"{session_id}{SUFFIX}"

    def exists(self, session_id: str) -> bool:
        return self.path_for(session_id).is_file()

    def save(self, session: Session) -> Path:
        path = self.path_for(session.id)
        data = json.dumps(encode_session(session), ensure_ascii=False, indent=2)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{session.id}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data + "\n")
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"failed to save session {session.id}: {e}") from e
        logger.debug("saved session %s to %s", session.id, path)
        return path

    def load(self, session_id: str) -> Session:
        path = self.path_for(session_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise SessionNotFoundError(f"session not found: {session_id}") from e
        except UnicodeDecodeError as e:
            raise SessionDecodeError(f"session {session_id} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise PersistenceError(f"failed to read session {session_id}: {e}") from e
        try:
            obj = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SessionDecodeError(f"session {session_id} is not valid JSON: {e}") from e
        session = decode_session(obj)
        if session.id != session_id:
            raise SessionDecodeError(f"file {path.name} holds session {session.id!r}")
        return session

    def list(self) -> list[Session]:
        """All decodable sessions, in file-name order; bad files are skipped."""
        if not self.directory.is_dir():
            return []
        out: list[Session] = []
        for path in sorted(self.directory.glob(f"*{SUFFIX}")):
            if not path.is_file() or path.name.startswith("."):
                continue
            sid = path.name[: -len(SUFFIX)]
            try:
                out.append(self.load(sid))
            except PersistenceError as e:
                logger.warning("skipping session %s: %s", sid, e)
        return out
