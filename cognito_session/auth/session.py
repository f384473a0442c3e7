"""
Local persistence of the last known signed-in user
"""
import os
from pathlib import Path
from typing import Optional

from ..utils.logger import setup_logger
from ..models.auth import PersistedSession, SessionTokens

logger = setup_logger(__name__)


class SessionStore:
    """Keeps the last known user's tokens in a JSON file"""

    def __init__(self, path):
        self.path = Path(path).expanduser()

    def load(self) -> Optional[PersistedSession]:
        """
        Load the persisted session

        Returns:
            Optional[PersistedSession]: Session or None if absent/unreadable
        """
        if not self.path.exists():
            return None

        try:
            return PersistedSession.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            # ValueError covers undecodable bytes and pydantic ValidationError
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return None

    def load_for(self, username: str) -> Optional[PersistedSession]:
        """Load the persisted session only if it belongs to username"""
        session = self.load()
        if session and session.username == username:
            return session
        return None

    def save(self, username: str, tokens: SessionTokens, device_key: Optional[str] = None) -> PersistedSession:
        """
        Persist a session, replacing any previous one

        Args:
            username: Signed-in username
            tokens: Tokens to keep
            device_key: Device key issued by the provider

        Returns:
            PersistedSession: The stored record
        """
        session = PersistedSession(username=username, tokens=tokens, device_key=device_key)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(session.model_dump_json())
        os.replace(tmp_path, self.path)

        logger.debug(f"Saved session for user: {username}")
        return session

    def clear(self) -> None:
        """Forget the last known user"""
        try:
            self.path.unlink()
            logger.debug("Cleared persisted session")
        except FileNotFoundError:
            pass
