"""Odoo JSON-RPC Client.

Low-level client for Odoo's /web/dataset/call_kw endpoint.
Handles the session cookie, JSON-RPC envelopes, pagination and error mapping.

There is no retry loop: a failed call raises RemoteCallError immediately. The
only repeated call is a single re-authentication when Odoo reports that the
cached session has expired.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from connectors.odoo.odoo_auth import OdooSessionProvider, build_rpc_envelope
from core.errors import RemoteCallError


logger = logging.getLogger(__name__)

SESSION_EXPIRED_ERRORS = ("odoo.http.SessionExpiredException", "werkzeug.exceptions.Forbidden")


def _rpc_error_message(error: Dict[str, Any]) -> str:
    data = error.get("data") or {}
    return data.get("message") or error.get("message") or "unknown JSON-RPC error"


def _is_session_expired(error: Dict[str, Any]) -> bool:
    data = error.get("data") or {}
    return error.get("code") == 100 or data.get("name") in SESSION_EXPIRED_ERRORS


class OdooRpcClient:
    """JSON-RPC client for the Odoo external API.

    Usage:
        client = OdooRpcClient(auth_provider, base_url)
        await client.connect()
        quants = await client.search_read_all("stock.quant", [["warehouse_id", "!=", False]], ["id"])
        move_id = await client.create("stock.move", {...})
    """

    def __init__(self, auth_provider: OdooSessionProvider, base_url: str, timeout_seconds: int = 30):
        self.auth_provider = auth_provider
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        """Open the HTTP session (authentication happens lazily)."""
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _endpoint(self, model: str, method: str) -> str:
        return f"{self.base_url}/web/dataset/call_kw/{model}/{method}"

    async def _post(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        odoo_session = await self.auth_provider.get_session(self._session)
        headers = {
            "Content-Type": "application/json",
            "Cookie": odoo_session.cookie_header,
        }
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with self._session.post(
                url,
                json=build_rpc_envelope(params),
                headers=headers,
                timeout=timeout,
            ) as response:
                response_text = await response.text()
                if response.status >= 400:
                    raise RemoteCallError(
                        f"Odoo HTTP error {response.status}",
                        status_code=response.status,
                        response_body=response_text,
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise RemoteCallError(f"Odoo request timed out after {self.timeout_seconds}s") from e
        except aiohttp.ClientError as e:
            raise RemoteCallError(f"Odoo request failed: {e}") from e

    async def call_kw(
        self,
        model: str,
        method: str,
        args: Optional[List[Any]] = None,
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Call a model method and return its `result`.

        Args:
            model: Odoo model, e.g. "stock.move"
            method: Model method, e.g. "search_read"
            args: Positional arguments
            kwargs: Keyword arguments

        Returns:
            The JSON-RPC result value

        Raises:
            RemoteCallError: HTTP, transport or JSON-RPC error
        """
        if self._session is None:
            raise RemoteCallError("Not connected. Call connect() first.")

        params = {
            "model": model,
            "method": method,
            "args": args or [],
            "kwargs": kwargs or {},
        }
        url = self._endpoint(model, method)

        for attempt in range(2):
            data = await self._post(url, params)
            error = data.get("error")
            if not error:
                return data.get("result")
            if attempt == 0 and _is_session_expired(error):
                logger.warning("Odoo session expired, re-authenticating...")
                self.auth_provider.invalidate()
                continue
            raise RemoteCallError(
                f"Odoo error in {model}.{method}: {_rpc_error_message(error)}",
                status_code=200,
                response_body=str(error),
            )

        raise RemoteCallError(f"Odoo session could not be renewed for {model}.{method}")

    async def search_read(
        self,
        model: str,
        domain: List[Any],
        fields: List[str],
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {"domain": domain, "fields": fields}
        if limit is not None:
            kwargs["limit"] = limit
        if offset is not None:
            kwargs["offset"] = offset
        result = await self.call_kw(model, "search_read", kwargs=kwargs)
        return result or []

    async def search_read_all(
        self,
        model: str,
        domain: List[Any],
        fields: List[str],
        page_size: int = 100,
    ) -> List[Dict[str, Any]]:
        """search_read with limit/offset pagination until a short or empty page."""
        all_records: List[Dict[str, Any]] = []
        offset = 0

        while True:
            page = await self.search_read(model, domain, fields, limit=page_size, offset=offset)
            if not page:
                break
            all_records.extend(page)
            if len(page) < page_size:
                break
            offset += page_size

        return all_records

    async def create(self, model: str, values: Dict[str, Any]) -> int:
        """Create one record; returns its id."""
        result = await self.call_kw(model, "create", args=[values])
        if isinstance(result, list):
            result = result[0] if result else None
        if result in (None, False):
            raise RemoteCallError(f"Odoo returned no id when creating {model}")
        return int(result)

    async def action_post(self, model: str, record_ids: List[int]) -> Any:
        return await self.call_kw(model, "action_post", args=[list(record_ids)])
