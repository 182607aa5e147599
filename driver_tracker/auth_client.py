"""
Client for the fleet authentication API
"""

import logging
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from .config import settings
from .exceptions import AuthenticationError, AuthServiceError, MalformedResponseError
from .models import LoginEnvelope, User, UserEnvelope
from .token_store import TokenStore

logger = logging.getLogger(__name__)


class AuthClient:
    """Logs drivers in and keeps their access token in a TokenStore"""

    def __init__(self, token_store: TokenStore, api_url: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None,
                 token_key: Optional[str] = None):
        self.token_store = token_store
        self.api_url = (api_url or settings.api_url).rstrip('/')
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT
        self.session = session or requests.Session()
        self.token_key = token_key or settings.TOKEN_KEY

    @property
    def token(self) -> Optional[str]:
        return self.token_store.get(self.token_key)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.api_url}{path}"
        headers = {"Content-Type": "application/json", **kwargs.pop("headers", {})}
        try:
            return self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed: {str(e)}")
            raise AuthServiceError("Could not connect to the server") from e

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Invalid JSON from {response.url}") from e
        if not isinstance(body, dict):
            raise MalformedResponseError(f"Expected a JSON object from {response.url}")
        return body

    def fetch_user(self, token: str) -> User:
        """GET /user/me with a bearer token"""
        response = self._request("GET", "/user/me", headers={"Authorization": f"Bearer {token}"})
        if not response.ok:
            raise AuthenticationError(f"Token rejected ({response.status_code})")
        try:
            return UserEnvelope.model_validate(self._json(response)).data
        except ValidationError as e:
            raise MalformedResponseError(f"Unexpected user payload: {e.error_count()} invalid field(s)") from e

    def login(self, email: str, password: str) -> User:
        """Exchange credentials for a token, store it and return the user"""
        logger.info(f"Attempting login for: {email}")
        response = self._request("POST", "/user/login", json={"email": email, "password": password})
        body = self._json(response)

        if not response.ok:
            raise AuthenticationError(body.get("message") or "Invalid credentials")
        try:
            access_token = LoginEnvelope.model_validate(body).data.access_token
        except ValidationError as e:
            raise MalformedResponseError("Login response has no access token") from e

        self.token_store.set(self.token_key, access_token)
        try:
            user = self.fetch_user(access_token)
        except AuthenticationError as e:
            raise AuthServiceError("Failed to fetch user data after login") from e
        logger.info(f"Login successful for {user.email}")
        return user

    def restore_session(self) -> Optional[User]:
        """Load the user for a stored token; invalid tokens are discarded"""
        token = self.token
        if not token:
            logger.info("No token found")
            return None
        try:
            user = self.fetch_user(token)
        except AuthenticationError:
            logger.info("Token invalid, removing...")
            self.token_store.delete(self.token_key)
            return None
        except (AuthServiceError, MalformedResponseError) as e:
            logger.error(f"Failed to load user from storage: {str(e)}")
            self.token_store.delete(self.token_key)
            return None
        logger.info("User data loaded successfully")
        return user

    def logout(self):
        logger.info("Logging out...")
        self.token_store.delete(self.token_key)
