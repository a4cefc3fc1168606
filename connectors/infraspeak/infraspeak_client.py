"""Infraspeak HTTP Client.

Low-level client for the Infraspeak v3 REST API (JSON:API shaped responses).
Handles authentication headers, page-number pagination and error mapping.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from core.errors import RemoteCallError


logger = logging.getLogger(__name__)


@dataclass
class InfraspeakApiConfig:
    """Configuration for the Infraspeak API client.

    Attributes:
        api_key: Personal access token (sent as Bearer)
        email: Contact email, included in the User-Agent as Infraspeak requires
        base_url: API root
        app_name: Application name for the User-Agent
        timeout_seconds: Per-request timeout
        max_pages: Safety stop for runaway pagination
    """
    api_key: str
    email: str
    base_url: str = "https://api.infraspeak.com/v3"
    app_name: str = "OdooSpeak"
    timeout_seconds: int = 30
    max_pages: int = 1000

    @property
    def user_agent(self) -> str:
        return f"{self.app_name} ({self.email})"


class InfraspeakClient:
    """HTTP client for the Infraspeak API.

    Usage:
        client = InfraspeakClient(InfraspeakApiConfig(api_key=..., email=...))
        await client.connect()
        requests = await client.list_all("requests", params={"s_state_in": "COMPLETED"})
        response = await client.post("stock-movements", payload)
    """

    def __init__(self, config: InfraspeakApiConfig):
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }

    def _build_url(self, endpoint: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make an authenticated API request.

        Raises:
            RemoteCallError: Non-2xx response or transport failure
        """
        if self._session is None:
            raise RemoteCallError("Not connected. Call connect() first.")

        url = self._build_url(endpoint)
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        try:
            async with self._session.request(
                method,
                url,
                headers=self._get_headers(),
                params=query or None,
                json=data,
                timeout=timeout,
            ) as response:
                response_text = await response.text()
                if response.status >= 400:
                    raise RemoteCallError(
                        f"Infraspeak API error {response.status} on {method} {endpoint}",
                        status_code=response.status,
                        response_body=response_text,
                    )
                if response.status == 204 or not response_text:
                    return {}
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise RemoteCallError(
                f"Infraspeak request {method} {endpoint} timed out after {self.config.timeout_seconds}s"
            ) from e
        except aiohttp.ClientError as e:
            raise RemoteCallError(f"Infraspeak request {method} {endpoint} failed: {e}") from e

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._request("GET", endpoint, params=params)

    async def post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", endpoint, data=payload)

    async def list_all(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Collect `data` across pages while the response carries links.next.

        Args:
            endpoint: Resource path, e.g. "materials/all"
            params: Filters; `page` is managed here

        Returns:
            All resources from all pages
        """
        all_results: List[Dict[str, Any]] = []
        page = 1

        while page <= self.config.max_pages:
            query = dict(params or {})
            query["page"] = page
            response = await self.get(endpoint, params=query)

            data = response.get("data")
            if isinstance(data, list):
                all_results.extend(data)

            links = response.get("links") or {}
            if not links.get("next"):
                break
            page += 1
        else:
            logger.warning(f"Stopped paginating {endpoint} after {self.config.max_pages} pages")

        return all_results
