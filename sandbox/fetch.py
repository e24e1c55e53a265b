"""
HTTP access for sandboxed scripts.

`fetch(url, options)` is synchronous inside the sandbox: it returns a
response object whose `json()` / `text()` give the body directly.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from sandbox.errors import SandboxRuntimeError
from sandbox.runtime import UNDEFINED, NativeFunction, json_parse, to_string

logger = structlog.get_logger()


class JSResponse:
    """The value a script receives from `fetch`."""

    def __init__(self, response: httpx.Response):
        self.response = response

    def js_get(self, interp, key: str) -> Any:
        response = self.response
        if key == "status":
            return response.status_code
        if key == "ok":
            return response.is_success
        if key == "statusText":
            return response.reason_phrase
        if key == "url":
            return str(response.url)
        if key == "headers":
            return {name.lower(): value for name, value in response.headers.items()}
        if key == "json":
            return NativeFunction("json", lambda *args: json_parse(response.text))
        if key == "text":
            return NativeFunction("text", lambda *args: interp.check_string(response.text))
        return UNDEFINED

    def js_string(self) -> str:
        return "[object Response]"

    def to_python(self) -> dict:
        return {"status": self.response.status_code, "ok": self.response.is_success}


class HttpFetcher:
    """Performs requests for scripts, retrying transport failures."""

    def __init__(self, timeout: float = 10.0, retries: int = 2, client: Optional[httpx.Client] = None):
        self.timeout = timeout
        self.retries = retries
        self.client = client

    def _request_args(self, options: Any) -> dict:
        if not isinstance(options, dict):
            return {"method": "GET", "headers": {}, "content": None}
        headers = options.get("headers")
        body = options.get("body", UNDEFINED)
        return {
            "method": to_string(options.get("method", "GET")).upper(),
            "headers": {to_string(k): to_string(v) for k, v in headers.items()} if isinstance(headers, dict) else {},
            "content": None if body is UNDEFINED or body is None else to_string(body),
        }

    def fetch(self, url: Any, options: Any = UNDEFINED, budget: float = None) -> JSResponse:
        target = to_string(url)
        args = self._request_args(options)
        timeout = self.timeout if budget is None else max(min(self.timeout, budget), 0.001)

        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.retries + 1),
                wait=wait_exponential(multiplier=0.1, max=1),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = self._send(target, args, timeout)
        except httpx.HTTPError as e:
            logger.warning("sandbox_fetch_failed", url=target, error=str(e))
            raise SandboxRuntimeError("TypeError", f"fetch failed: {e}")

        logger.info("sandbox_fetch", method=args["method"], url=target, status=response.status_code)
        return JSResponse(response)

    def _send(self, url: str, args: dict, timeout: float) -> httpx.Response:
        if self.client is not None:
            return self.client.request(url=url, timeout=timeout, **args)
        with httpx.Client(timeout=timeout) as client:
            response = client.request(url=url, **args)
            response.read()
            return response
