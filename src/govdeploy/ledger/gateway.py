from __future__ import annotations

from typing import Any

import httpx
import structlog

from govdeploy.core.errors import RejectedError, TransientError
from govdeploy.ledger.base import LedgerRequest, Receipt

logger = structlog.get_logger()

DEFAULT_USER_AGENT = "govdeploy-gateway/0.1.0"


def is_retryable_status(status_code: int) -> bool:
    """Determine if HTTP status code is retryable."""
    return status_code in (408, 425, 429, 500, 502, 503, 504)


class GatewayClient:
    """``ResourceClient`` speaking to an HTTP signing gateway.

    The gateway owns keys, nonces and RPC transport; it accepts resolved
    requests, signs and broadcasts them, and answers once they are mined.
    Retries are left to the step executor, so every call is single-shot.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 120.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._user_agent = user_agent

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def account(self) -> str:
        data = await self._request("GET", "/v1/account")
        return data["address"]

    async def submit(self, request: LedgerRequest) -> Receipt:
        data = await self._request(
            "POST",
            "/v1/requests",
            json=request.to_dict(),
            headers={"Idempotency-Key": request.idempotency_key},
        )
        return Receipt.from_dict(data)

    async def query(self, address: str, method: str, *args: Any) -> Any:
        data = await self._request(
            "POST",
            "/v1/query",
            json={"address": address, "method": method, "args": list(args)},
        )
        return data.get("value")

    async def lookup(self, idempotency_key: str) -> Receipt | None:
        try:
            data = await self._request("GET", f"/v1/requests/{idempotency_key}")
        except RejectedError as exc:
            if exc.details.get("status") == 404:
                return None
            raise
        return Receipt.from_dict(data)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Execute one HTTP request, mapping failures onto the ledger taxonomy."""
        url = f"{self._base_url}{path}"
        req_headers = self._headers()
        if headers:
            req_headers.update(headers)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(method, url, json=json, headers=req_headers)
        except httpx.TransportError as exc:
            logger.warning("gateway_network_error", method=method, url=url, error=str(exc))
            raise TransientError(f"Gateway unreachable: {exc}", {"url": url}) from exc

        if is_retryable_status(response.status_code):
            logger.warning("gateway_retryable_error", status=response.status_code, method=method, url=url)
            raise TransientError(
                f"HTTP {response.status_code}: {response.text}",
                {"status": response.status_code, "url": url},
            )
        if response.is_error:
            logger.error("gateway_request_rejected", status=response.status_code, method=method, url=url)
            raise RejectedError(
                _rejection_reason(response),
                {"status": response.status_code, "url": url},
            )
        return response.json() if response.content else {}


def _rejection_reason(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text}"
    if isinstance(body, dict) and body.get("reason"):
        return str(body["reason"])
    return f"HTTP {response.status_code}: {response.text}"
