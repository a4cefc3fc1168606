"""Odoo Session Provider.

Handles session authentication against Odoo's /web/session/authenticate
endpoint. The session id comes back as a `session_id` cookie and is then sent
with every JSON-RPC call.

The session is obtained lazily on first use and cached until it expires or
is explicitly invalidated (e.g. after Odoo reports a SessionExpiredException).
"""

import asyncio
import random
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

import aiohttp

from core.errors import AuthenticationError, RemoteCallError


_SESSION_COOKIE_PATTERN = re.compile(r"session_id=([^;]*)")


@dataclass
class OdooAuthConfig:
    """Configuration for Odoo session authentication.

    Attributes:
        base_url: Odoo instance URL (e.g. https://acme.odoo.com)
        db: Database name
        login: User login
        password: User password
        api_key: API key sent as Bearer token on the authenticate call
        session_lifetime_seconds: How long a session is reused before re-authenticating
    """
    base_url: str
    db: str
    login: str
    password: str
    api_key: str
    session_lifetime_seconds: int = 3600
    timeout_seconds: int = 30

    @property
    def authenticate_endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/web/session/authenticate"


@dataclass
class OdooSession:
    """Authenticated session with expiration tracking."""
    session_id: str
    lifetime_seconds: int = 3600
    obtained_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def expires_at(self) -> datetime:
        return self.obtained_at + timedelta(seconds=self.lifetime_seconds)

    @property
    def is_expired(self) -> bool:
        """Check if the session is expired (with 1-minute buffer)."""
        return datetime.utcnow() >= (self.expires_at - timedelta(minutes=1))

    @property
    def cookie_header(self) -> str:
        return f"session_id={self.session_id}"


def extract_session_id(set_cookie_headers: Iterable[str]) -> Optional[str]:
    """Pull the session_id value out of Set-Cookie header values."""
    for header in set_cookie_headers:
        if not header:
            continue
        match = _SESSION_COOKIE_PATTERN.search(header)
        if match and match.group(1):
            return match.group(1)
    return None


def build_rpc_envelope(params: dict, request_id: Optional[int] = None) -> dict:
    """Wrap params in a JSON-RPC 2.0 'call' envelope."""
    return {
        "jsonrpc": "2.0",
        "method": "call",
        "params": params,
        "id": request_id if request_id is not None else random.randint(0, 999),
    }


class OdooSessionProvider:
    """Session capability for the Odoo JSON-RPC client.

    Usage:
        auth = OdooSessionProvider(OdooAuthConfig(...))
        session = await auth.get_session(http_session)
        ...
        auth.invalidate()  # force re-authentication on next call
    """

    def __init__(self, config: OdooAuthConfig):
        self.config = config
        self._session: Optional[OdooSession] = None
        self._lock = asyncio.Lock()

    @property
    def has_valid_session(self) -> bool:
        return self._session is not None and not self._session.is_expired

    def invalidate(self) -> None:
        """Drop the cached session so the next call re-authenticates."""
        self._session = None

    async def get_session(self, http_session: aiohttp.ClientSession) -> OdooSession:
        """Return the cached session, authenticating first if needed."""
        async with self._lock:
            if not self.has_valid_session:
                self._session = await self.authenticate(http_session)
            return self._session

    async def authenticate(self, http_session: aiohttp.ClientSession) -> OdooSession:
        """Authenticate against Odoo and return a new session.

        Raises:
            AuthenticationError: Odoo rejected the credentials or sent no session cookie
            RemoteCallError: Transport failure
        """
        payload = build_rpc_envelope({
            "db": self.config.db,
            "login": self.config.login,
            "password": self.config.password,
        })
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)

        try:
            async with http_session.post(
                self.config.authenticate_endpoint,
                json=payload,
                headers=headers,
                timeout=timeout,
            ) as response:
                body_text = await response.text()
                if response.status >= 400:
                    raise AuthenticationError(
                        f"Authentication HTTP error {response.status}",
                        status_code=response.status,
                        response_body=body_text,
                    )
                data = await response.json(content_type=None)
                if data.get("error"):
                    message = data["error"].get("message", "unknown error")
                    raise AuthenticationError(
                        f"Authentication error: {message}",
                        status_code=response.status,
                        response_body=body_text,
                    )

                session_id = None
                cookie = response.cookies.get("session_id")
                if cookie is not None and cookie.value:
                    session_id = cookie.value
                if not session_id:
                    session_id = extract_session_id(response.headers.getall("Set-Cookie", []))
                if not session_id:
                    raise AuthenticationError("Session ID not found in authentication response")

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteCallError(f"Error authenticating with Odoo: {e!r}") from e

        return OdooSession(session_id=session_id, lifetime_seconds=self.config.session_lifetime_seconds)
