"""Connections to the remote record store.

A connection owns the HTTP session and the access token. Record
operations reach it only through ``request``, which returns the status
and decoded body of a reply and raises ``TransportError`` for anything
that is not attributable to the records involved.
"""

import logging
import os
from typing import Any

import httpx

from .exceptions import AuthenticationError, TransportError
from .sobject import AsyncSObject, SObject
from .types import ProtocolResponse, RequestSpec

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_URL = "https://login.salesforce.com"
DEFAULT_API_VERSION = "42.0"

_ENV_SETTINGS = {
    "instance_url": "CRM_INSTANCE_URL",
    "access_token": "CRM_ACCESS_TOKEN",
    "login_url": "CRM_LOGIN_URL",
    "username": "CRM_USERNAME",
    "password": "CRM_PASSWORD",
    "client_id": "CRM_CLIENT_ID",
    "client_secret": "CRM_CLIENT_SECRET",
    "api_version": "CRM_API_VERSION",
}


class _BaseConnection:
    """Settings and request/response plumbing shared by both connections."""

    def __init__(
        self,
        instance_url: str | None = None,
        access_token: str | None = None,
        *,
        login_url: str = DEFAULT_LOGIN_URL,
        username: str | None = None,
        password: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 30.0,
    ):
        self.instance_url = instance_url.rstrip("/") if instance_url else None
        self.access_token = access_token
        self.login_url = login_url.rstrip("/")
        self.username = username
        self.password = password
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_version = api_version
        self.timeout = timeout
        self._established = False
        self._closed = False

    @classmethod
    def from_env(cls, **kwargs: Any):
        """Create a connection from ``CRM_*`` environment variables.

        Keyword arguments take precedence over the environment.
        """
        settings: dict[str, Any] = {}
        for name, variable in _ENV_SETTINGS.items():
            value = os.environ.get(variable)
            if value:
                settings[name] = value
        settings.update(kwargs)
        return cls(**settings)

    @property
    def base_url(self) -> str:
        return f"{self.instance_url}/services/data/v{self.api_version}"

    @property
    def established(self) -> bool:
        return self._established and not self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise TransportError("Connection is closed", "CONNECTION_CLOSED")
        if not self._established:
            raise TransportError("Connection is not established", "NOT_ESTABLISHED")

    def _token_request(self) -> dict[str, str]:
        missing = [
            name
            for name in ("username", "password", "client_id", "client_secret")
            if not getattr(self, name)
        ]
        if missing:
            raise AuthenticationError(
                f"Cannot log in without an access token; missing {', '.join(missing)}"
            )
        return {
            "grant_type": "password",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "username": self.username,
            "password": self.password,
        }

    def _apply_token(self, response: httpx.Response) -> None:
        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if response.status_code != 200 or "access_token" not in body:
            raise AuthenticationError(
                body.get("error_description", f"Login failed with status {response.status_code}"),
                body.get("error"),
            )
        self.access_token = body["access_token"]
        self.instance_url = (body.get("instance_url") or self.instance_url or "").rstrip("/")

    def _mark_established(self) -> None:
        if not self.instance_url:
            raise TransportError("Connection has no instance URL", "NOT_ESTABLISHED")
        self._established = True
        logger.info("Session established against %s", self.instance_url)

    def _build_request(self, spec: RequestSpec) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }
        headers.update(spec.headers)
        request: dict[str, Any] = {
            "method": spec.method,
            "url": f"{self.base_url}{spec.path}",
            "headers": headers,
        }
        if spec.body is not None:
            request["json"] = spec.body
        if spec.params:
            request["params"] = spec.params
        return request

    def _decode(self, response: httpx.Response, spec: RequestSpec) -> ProtocolResponse:
        logger.debug("%s %s -> %d", spec.method, spec.path, response.status_code)
        if response.status_code == 401:
            raise TransportError("Session expired or invalid", "INVALID_SESSION_ID")
        if response.status_code >= 500:
            raise TransportError(
                f"Server error {response.status_code} for {spec.method} {spec.path}",
                str(response.status_code),
            )
        if not response.content:
            return ProtocolResponse(response.status_code)
        try:
            body = response.json()
        except ValueError:
            body = response.text
        return ProtocolResponse(response.status_code, body)


class Connection(_BaseConnection):
    """HTTP connection to the record store.

    Args:
        instance_url: Base URL of the instance (e.g. "https://na1.example.com").
        access_token: Bearer token. When omitted, ``establish`` logs in with
            the username/password OAuth2 flow.
        login_url: Token endpoint host used for logging in.
        api_version: REST API version.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, mostly for tests.

    Example:
        >>> with Connection("https://na1.example.com", token) as conn:
        ...     result = conn.sobject("Account").create({"Name": "Hello"})
    """

    def __init__(
        self,
        instance_url: str | None = None,
        access_token: str | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        **kwargs: Any,
    ):
        super().__init__(instance_url, access_token, **kwargs)
        self._client = httpx.Client(timeout=self.timeout, transport=transport)

    def establish(self) -> None:
        """Open the session, logging in if no access token was given."""
        if self._closed:
            raise TransportError("Connection is closed", "CONNECTION_CLOSED")
        if not self.access_token:
            try:
                response = self._client.post(
                    f"{self.login_url}/services/oauth2/token",
                    data=self._token_request(),
                )
            except httpx.HTTPError as e:
                raise TransportError(f"Login request failed: {e}")
            self._apply_token(response)
        self._mark_established()

    def close(self) -> None:
        """Close the HTTP client."""
        if not self._closed:
            self._client.close()
            self._closed = True
            logger.info("Session closed")

    def __enter__(self) -> "Connection":
        self.establish()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def request(self, spec: RequestSpec) -> ProtocolResponse:
        """Send one protocol operation."""
        self._check_open()
        try:
            response = self._client.request(**self._build_request(spec))
        except httpx.HTTPError as e:
            raise TransportError(f"{spec.method} {spec.path} failed: {e}")
        return self._decode(response, spec)

    def sobject(self, object_type: str) -> SObject:
        """Return the record endpoint for an object type."""
        return SObject(object_type, self)


class AsyncConnection(_BaseConnection):
    """Async HTTP connection to the record store.

    Same interface as Connection but uses async/await.
    """

    def __init__(
        self,
        instance_url: str | None = None,
        access_token: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ):
        super().__init__(instance_url, access_token, **kwargs)
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def establish(self) -> None:
        """Open the session, logging in if no access token was given."""
        if self._closed:
            raise TransportError("Connection is closed", "CONNECTION_CLOSED")
        if not self.access_token:
            try:
                response = await self._client.post(
                    f"{self.login_url}/services/oauth2/token",
                    data=self._token_request(),
                )
            except httpx.HTTPError as e:
                raise TransportError(f"Login request failed: {e}")
            self._apply_token(response)
        self._mark_established()

    async def close(self) -> None:
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True
            logger.info("Session closed")

    async def __aenter__(self) -> "AsyncConnection":
        await self.establish()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(self, spec: RequestSpec) -> ProtocolResponse:
        """Send one protocol operation."""
        self._check_open()
        try:
            response = await self._client.request(**self._build_request(spec))
        except httpx.HTTPError as e:
            raise TransportError(f"{spec.method} {spec.path} failed: {e}")
        return self._decode(response, spec)

    def sobject(self, object_type: str) -> AsyncSObject:
        """Return the record endpoint for an object type."""
        return AsyncSObject(object_type, self)
