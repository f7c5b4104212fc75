"""
Local persisted client state (session token, cached email/branch, anonymous id)
"""
import os
import json
import uuid
import logging
from dataclasses import dataclass, asdict, fields
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_PATH = os.path.join(os.path.expanduser('~'), '.drawlab', 'session.json')


@dataclass
class ClientSession:
    session_token: Optional[str] = None
    email: Optional[str] = None
    branch: Optional[str] = None
    anonymous_id: Optional[str] = None

    @property
    def logged_in(self) -> bool:
        return bool(self.session_token)


class SessionStore:
    """JSON file backed replacement for the browser's local storage"""

    def __init__(self, path: str = DEFAULT_PATH):
        self.path = path

    def load(self) -> ClientSession:
        if not os.path.exists(self.path):
            return ClientSession()
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return ClientSession()
        if not isinstance(data, dict):
            return ClientSession()
        known = {f.name for f in fields(ClientSession)}
        return ClientSession(**{k: v for k, v in data.items() if k in known})

    def save(self, session: ClientSession) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(asdict(session), f, indent=2)

    def login(self, session_token: str, email: str, branch: Optional[str]) -> ClientSession:
        session = self.load()
        session.session_token = session_token
        session.email = email
        session.branch = branch
        self.save(session)
        return session

    def clear(self) -> ClientSession:
        """Logout: forget the account but keep the anonymous id"""
        session = ClientSession(anonymous_id=self.load().anonymous_id)
        self.save(session)
        return session

    def anonymous_identifier(self) -> str:
        """Stable random id keying test history for users who never log in"""
        session = self.load()
        if not session.anonymous_id:
            session.anonymous_id = str(uuid.uuid4())
            self.save(session)
        return session.anonymous_id

    def user_identifier(self) -> str:
        session = self.load()
        return session.email or self.anonymous_identifier()
