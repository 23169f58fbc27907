"""
Notification API client using httpx for the case-management backend
"""
from typing import Dict, List, Optional
from urllib.parse import quote
import logging

import httpx
from pydantic import ValidationError

from ..auth.session import SessionManager
from ..config import config
from ..notifications.models import Notification, parse_notifications

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Transport or HTTP failure talking to the notification API"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotSignedInError(ValueError):
    """A notification call was attempted without a signed-in identity"""


class NotificationGateway:
    """
    Async HTTP client for the notification endpoints
    """

    def __init__(self, session: Optional[SessionManager] = None, base_url: Optional[str] = None):
        """
        Initialize API client

        Args:
            session: Session providing request headers
            base_url: API base URL (defaults to config)
        """
        self.session = session
        self.base_url = base_url or config.API_BASE_URL

        # HTTP client configuration
        self.client_config = {
            'base_url': self.base_url,
            'timeout': httpx.Timeout(config.REQUEST_TIMEOUT),
            'limits': httpx.Limits(
                max_keepalive_connections=5,
                max_connections=10,
                keepalive_expiry=30
            ),
            'http2': config.HTTP2
        }

        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()

    async def connect(self) -> None:
        """Initialize HTTP client"""
        if not self._client:
            self._client = httpx.AsyncClient(**self.client_config)
            logger.debug("HTTP client connected")

    async def close(self) -> None:
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("HTTP client closed")

    def _headers(self) -> Dict[str, str]:
        if self.session:
            return self.session.get_headers()
        return {'Accept': 'application/json', 'Content-Type': 'application/json'}

    @staticmethod
    def _require_user(user_id: Optional[str]) -> str:
        if not user_id:
            raise NotSignedInError("No signed-in user; notification call not issued")
        return quote(user_id, safe='')

    async def _make_request(self,
                            method: str,
                            endpoint: str,
                            params: Optional[Dict] = None,
                            data: Optional[Dict] = None) -> httpx.Response:
        """
        Make an HTTP request and fail on transport errors or error statuses

        Args:
            method: HTTP method
            endpoint: API endpoint
            params: Query parameters
            data: Request body data

        Returns:
            HTTP response with a 2xx status
        """
        if not self._client:
            await self.connect()

        try:
            response = await self._client.request(
                method=method,
                url=endpoint,
                params=params,
                json=data,
                headers=self._headers()
            )
        except httpx.TimeoutException as e:
            logger.error(f"Request timeout: {method} {endpoint}: {e}")
            raise GatewayError(f"Timeout calling {endpoint}") from e
        except httpx.HTTPError as e:
            logger.error(f"Request failed: {method} {endpoint}: {e}")
            raise GatewayError(f"Transport error calling {endpoint}: {e}") from e

        if response.status_code >= 400:
            logger.error(f"{method} {endpoint} returned {response.status_code} - {response.text[:200]}")
            raise GatewayError(
                f"{method} {endpoint} returned {response.status_code}",
                status_code=response.status_code
            )

        return response

    async def _get_notifications(self, endpoint: str) -> List[Notification]:
        response = await self._make_request('GET', endpoint)
        try:
            return parse_notifications(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Unexpected payload from {endpoint}: {e}")
            raise GatewayError(f"Malformed notification list from {endpoint}") from e

    async def _acknowledge(self, method: str, endpoint: str, params: Optional[Dict] = None) -> bool:
        response = await self._make_request(method, endpoint, params=params)
        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError(f"Malformed acknowledgment from {endpoint}") from e
        return isinstance(body, dict) and body.get('success') is True

    async def fetch_active_notifications(self, user_id: str) -> List[Notification]:
        """
        Get the user's active (non-trashed) notifications

        Args:
            user_id: Signed-in username

        Returns:
            Notifications in server order
        """
        user = self._require_user(user_id)
        notifications = await self._get_notifications(f"/notifications/user/{user}")
        logger.debug(f"Fetched {len(notifications)} active notifications for {user_id}")
        return notifications

    async def fetch_trashed_notifications(self, user_id: str) -> List[Notification]:
        """Get the user's trashed notifications"""
        user = self._require_user(user_id)
        notifications = await self._get_notifications(f"/notifications/user/{user}/trash")
        logger.debug(f"Fetched {len(notifications)} trashed notifications for {user_id}")
        return notifications

    async def fetch_unread_count(self, user_id: str) -> int:
        """Get the server-side unread count"""
        user = self._require_user(user_id)
        response = await self._make_request('GET', f"/notifications/user/{user}/unread/count")
        try:
            return int(response.json().get('count', 0))
        except (ValueError, TypeError, AttributeError) as e:
            raise GatewayError("Malformed unread count") from e

    async def mark_read(self, notification_id: int, user_id: str) -> bool:
        """Acknowledge one notification as read"""
        self._require_user(user_id)
        return await self._acknowledge(
            'POST', f"/notifications/{notification_id}/read", params={'userId': user_id}
        )

    async def mark_all_read(self, user_id: str) -> bool:
        """Acknowledge every unread notification in one call"""
        user = self._require_user(user_id)
        return await self._acknowledge('POST', f"/notifications/user/{user}/read-all")

    async def delete_notification(self, notification_id: int, user_id: str) -> bool:
        """Move one notification to the trash"""
        self._require_user(user_id)
        return await self._acknowledge(
            'DELETE', f"/notifications/{notification_id}", params={'userId': user_id}
        )

    async def delete_all_notifications(self, user_id: str) -> bool:
        """Delete every notification of the user"""
        user = self._require_user(user_id)
        return await self._acknowledge('DELETE', f"/notifications/user/{user}/all")

    async def restore_notification(self, notification_id: int, user_id: str) -> bool:
        """Bring a trashed notification back to the inbox"""
        self._require_user(user_id)
        return await self._acknowledge(
            'POST', f"/notifications/{notification_id}/restore", params={'userId': user_id}
        )
