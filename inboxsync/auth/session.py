"""
Signed-in user session for the case-management API
Persists the user to a local JSON file - zero config
"""
import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from ..config import config

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Optional[str]], None]


class SessionUser(BaseModel):
    """User returned by the login endpoint"""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore")

    name: str
    id: Optional[int] = None
    role: str = "point_focal"
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    insurance_company: Optional[str] = None
    token: Optional[str] = None


class SessionManager:
    """
    Holds the signed-in identity that keys every notification call
    and tells listeners when it changes
    """

    def __init__(self, session_file: Optional[Path] = None, base_url: Optional[str] = None):
        """
        Initialize session manager

        Args:
            session_file: Where the signed-in user is persisted
            base_url: API base URL used for sign-in
        """
        self.session_file = Path(session_file) if session_file else config.SESSION_FILE
        self.base_url = base_url or config.API_BASE_URL
        self.user: Optional[SessionUser] = None
        self._listeners: List[IdentityListener] = []

        self._load_session()

    def _load_session(self) -> bool:
        """Load a previously saved user"""
        if not self.session_file.exists():
            return False

        try:
            data = json.loads(self.session_file.read_text(encoding="utf-8"))
            self.user = SessionUser.model_validate(data)
            logger.debug(f"Restored session for {self.user.name}")
            return True
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Discarding unreadable session file: {e}")
            self.session_file.unlink(missing_ok=True)
            self.user = None
            return False

    def _save_session(self) -> None:
        self.session_file.parent.mkdir(parents=True, exist_ok=True)
        self.session_file.write_text(
            self.user.model_dump_json(by_alias=True, exclude_none=True), encoding="utf-8"
        )

    @property
    def user_id(self) -> Optional[str]:
        """Identity key for notification calls (the username)"""
        return self.user.name if self.user else None

    def is_signed_in(self) -> bool:
        return bool(self.user_id)

    def get_headers(self) -> Dict[str, str]:
        """Request headers, with a bearer token when the server issued one"""
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json'
        }
        if self.user and self.user.token:
            headers['Authorization'] = f"Bearer {self.user.token}"
        return headers

    def add_listener(self, listener: IdentityListener) -> None:
        """Register a callback invoked with the new user id on identity change"""
        self._listeners.append(listener)

    def remove_listener(self, listener: IdentityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, previous: Optional[str]) -> None:
        current = self.user_id
        if current == previous:
            return
        logger.info(f"Signed-in identity changed: {previous or '-'} -> {current or '-'}")
        for listener in list(self._listeners):
            listener(current)

    def set_user(self, user: Optional[SessionUser], persist: bool = True) -> None:
        """Install a user (or None to sign out) and notify listeners"""
        previous = self.user_id
        self.user = user

        if persist:
            if user is None:
                self.session_file.unlink(missing_ok=True)
            else:
                self._save_session()

        self._notify(previous)

    async def sign_in(self, username: str, insurance_company: str, password: str) -> bool:
        """
        Sign in against the case-management API

        Args:
            username: Account name
            insurance_company: Insurer the account belongs to
            password: Account password

        Returns:
            True if sign-in successful
        """
        url = f"{self.base_url}/auth/login"
        payload = {
            'username': username,
            'insuranceCompany': insurance_company,
            'password': password
        }

        try:
            async with httpx.AsyncClient(timeout=config.REQUEST_TIMEOUT) as client:
                response = await client.post(url, json=payload)

            if response.status_code != 200:
                logger.error(f"Sign-in failed: {response.status_code} - {response.text[:200]}")
                return False

            data = response.json()
            data.setdefault('name', data.get('username', username))
            role = str(data.get('role', '')).upper()
            data['role'] = 'admin' if role == 'ADMIN' else 'point_focal'

            self.set_user(SessionUser.model_validate(data))
            logger.info(f"Signed in as {self.user_id}")
            return True

        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.error(f"Error signing in: {e}")
            return False

    def sign_out(self) -> None:
        """Forget the signed-in user"""
        self.set_user(None)
