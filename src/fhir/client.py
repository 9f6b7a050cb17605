"""Async client for FHIR REST servers.

This client is deliberately thin:

- `get(path)` and `put(path, body)` address resources relative to `<base_url>/fhir`.
- The HTTP call uses `requests` executed in a thread so callers stay on the event loop.
- Non-2xx responses raise `FhirHttpError`; transport failures surface as
  `requests.RequestException`.

There is no retry here. Callers decide which operations are safe to retry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests  # type: ignore

logger = logging.getLogger(__name__)

FHIR_JSON: str = "application/fhir+json"


class FhirClient:
    """Minimal FHIR REST client bound to a single server.

    Members:
    - Base URL: `base_url` (without trailing slash; `/fhir` is appended per request)
    - TLS verification flag: `verify_tls`
    - Request timeout in seconds: `timeout`
    """

    def __init__(self, base_url: str, *, verify_tls: bool = True, timeout: float = 30.0) -> None:
        """Create a client for the server at `base_url`."""
        self.base_url: str = base_url.rstrip("/")
        self.verify_tls = verify_tls
        self.timeout = timeout

    def url_for(self, path: str) -> str:
        """Build the absolute URL for a resource path such as `/Patient/123`."""
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}/fhir{path}"

    async def get(self, path: str) -> Any:
        """GET a resource or search result and return the decoded JSON body."""
        _, payload = await self._send_request("GET", path, None, decode=True)
        return payload

    async def put(self, path: str, body: dict[str, Any]) -> int:
        """PUT a full resource document and return the response status code."""
        status_code, _ = await self._send_request("PUT", path, body, decode=False)
        return status_code

    async def _send_request(
        self, method: str, path: str, body: dict[str, Any] | None, *, decode: bool
    ) -> tuple[int, Any]:
        """Send a request, returning `(status_code, decoded_json_or_None)`.

        A 2xx body is only decoded when `decode` is set; write acknowledgements
        are not required to be JSON.

        Raises:
        - `FhirHttpError` for non-2xx responses
        - `requests.RequestException` for transport errors
        """
        url = self.url_for(path)
        headers = {"Accept": FHIR_JSON}
        if body is not None:
            headers["Content-Type"] = FHIR_JSON

        def _do_request() -> tuple[int, Any]:
            """Execute the HTTP request synchronously (runs in a worker thread)."""
            logger.debug("%s %s", method, url)
            resp = requests.request(
                method,
                url,
                headers=headers,
                json=body,
                timeout=self.timeout,
                verify=self.verify_tls,
            )
            if 200 <= resp.status_code < 300:
                if not decode or not resp.content:
                    return resp.status_code, None
                return resp.status_code, resp.json()

            error_payload: Any
            try:
                error_payload = resp.json()
            except Exception:  # noqa: BLE001 - best-effort parsing
                error_payload = None
            raise FhirHttpError(method=method, url=url, status_code=resp.status_code, payload=error_payload)

        return await asyncio.to_thread(_do_request)


class FhirHttpError(RuntimeError):
    """HTTP-level error returned by a FHIR server."""

    def __init__(self, *, method: str, url: str, status_code: int, payload: Any):
        """Create an error capturing the request, HTTP status code and parsed payload (if any)."""
        self.method = method
        self.url = url
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"FHIR {method} {url} returned HTTP {status_code}")
