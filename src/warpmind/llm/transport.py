"""Resilient request executor for the OpenAI-compatible HTTP API.

One logical request becomes up to ``max_retries + 1`` physical attempts.
Each attempt runs under its own ``AttemptDeadline``; expiry is surfaced as
``RequestTimeoutError`` and never retried.  Retryable statuses
(429/502/503/524) and transport failures back off and try again with the
exact same body and headers.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from urllib.parse import urlencode

import httpx

from warpmind.config import ClientConfig
from warpmind.errors import (
    APIError,
    ConfigurationError,
    NetworkError,
    NonRetryableAPIError,
    RequestTimeoutError,
    RetryableAPIError,
)
from warpmind.events.bus import EventBus
from warpmind.llm.retry import AttemptDeadline, is_retryable, retry_decision, sleep_ms
from warpmind.types import EventType, RequestAttempt, RetryDecision

_logger = logging.getLogger(__name__)

UNPARSEABLE_ERROR_BODY = "Unable to parse error response"

_BODYLESS_METHODS = ("GET", "DELETE")


def extract_error_message(resp: httpx.Response) -> str:
    """Best-effort error text: JSON ``error.message``, then raw text, then a placeholder."""
    try:
        data = resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        data = None
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"]
        if isinstance(err, str):
            return err
    try:
        text = resp.text.strip()
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        text = ""
    return text or UNPARSEABLE_ERROR_BODY


class RequestExecutor:
    """Issue logical API requests with retry and per-attempt timeout discipline.

    Parameters
    ----------
    config:
        Shared client configuration (read on every request, so mutations
        through the client's setters take effect immediately).
    event_bus:
        Optional bus that receives ``request.retry`` / ``request.failed``.
    transport:
        Optional httpx transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        event_bus: EventBus | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._event_bus = event_bus
        # Deadlines are enforced per attempt by AttemptDeadline
        self._client = httpx.AsyncClient(transport=transport, timeout=None)

    # ------------------------------------------------------------------
    # Request construction
    # ------------------------------------------------------------------

    def build_url(self, endpoint: str, query_params: dict[str, Any] | None = None) -> str:
        """Join the base URL and endpoint, ensuring a single ``/v1`` prefix."""
        base = self.config.base_url.rstrip("/")
        if not base.endswith("/v1"):
            base += "/v1"
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        url = base + endpoint
        if query_params:
            url += "?" + urlencode(query_params, doseq=True)
        return url

    def headers(self) -> dict[str, str]:
        if not self.config.api_key:
            raise ConfigurationError(
                "API key is required. Use set_api_key() to set your authentication key."
            )
        headers = {"Content-Type": "application/json", **self.config.custom_headers}
        if self.config.auth_type == "bearer":
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        else:
            headers["api-key"] = self.config.api_key
        return headers

    @staticmethod
    def _encode_body(method: str, payload: Any) -> bytes | None:
        if payload is None or method.upper() in _BODYLESS_METHODS:
            return None
        return json.dumps(payload).encode("utf-8")

    # ------------------------------------------------------------------
    # Non-streaming
    # ------------------------------------------------------------------

    async def execute(
        self,
        endpoint: str,
        payload: Any = None,
        *,
        timeout_ms: float | None = None,
        max_retries: int | None = None,
        method: str = "POST",
        query_params: dict[str, Any] | None = None,
    ) -> Any:
        """Perform one logical request and return the parsed JSON body.

        Raises ``RequestTimeoutError``, ``RetryableAPIError``,
        ``NonRetryableAPIError`` or ``NetworkError``.
        """
        method = method.upper()
        headers = self.headers()
        timeout_ms = timeout_ms or self.config.timeout_ms
        max_retries = self.config.max_retries if max_retries is None else max_retries
        url = self.build_url(endpoint, query_params)
        body = self._encode_body(method, payload)

        # The final attempt always raises: _handle_error_status and
        # _retry_network_or_raise only return while retries remain.
        attempt_index = 0
        while True:
            attempt = RequestAttempt(attempt_number=attempt_index)
            attempt_index += 1
            request = self._client.build_request(method, url, headers=headers, content=body)
            try:
                async with AttemptDeadline(timeout_ms):
                    resp = await self._client.send(request)
            except httpx.TimeoutException as e:
                raise RequestTimeoutError(timeout_ms) from e
            except httpx.TransportError as e:
                await self._retry_network_or_raise(e, attempt, max_retries)
                continue

            if resp.is_success:
                return self._parse_success(resp)

            decision = await self._handle_error_status(resp, attempt, max_retries)
            await sleep_ms(decision.delay_ms)

    @staticmethod
    def _parse_success(resp: httpx.Response) -> Any:
        if not resp.content:
            return None
        try:
            return resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise APIError(
                f"Invalid JSON in API response: {e}",
                status_code=resp.status_code,
                status_text=resp.reason_phrase,
            ) from e

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def stream(
        self,
        endpoint: str,
        payload: Any,
        *,
        timeout_ms: float | None = None,
        max_retries: int | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming POST and yield the 2xx ``httpx.Response``.

        Failures before the body starts flowing follow the same retry rules
        as ``execute``.  The attempt deadline covers the whole streaming read
        and is released when the context exits.
        """
        headers = self.headers()
        timeout_ms = timeout_ms or self.config.timeout_ms
        max_retries = self.config.max_retries if max_retries is None else max_retries
        url = self.build_url(endpoint)
        body = self._encode_body("POST", payload)

        attempt_index = 0
        while True:
            attempt = RequestAttempt(attempt_number=attempt_index)
            attempt_index += 1
            request = self._client.build_request("POST", url, headers=headers, content=body)
            decision: RetryDecision | None = None
            network_error: httpx.TransportError | None = None
            async with AttemptDeadline(timeout_ms):
                try:
                    resp = await self._client.send(request, stream=True)
                except httpx.TimeoutException as e:
                    raise RequestTimeoutError(timeout_ms) from e
                except httpx.TransportError as e:
                    network_error = e
                else:
                    try:
                        if resp.is_success:
                            yield resp
                            return
                        try:
                            await resp.aread()
                        except httpx.TimeoutException as e:
                            raise RequestTimeoutError(timeout_ms) from e
                        except httpx.TransportError as e:
                            network_error = e
                        else:
                            decision = await self._handle_error_status(
                                resp, attempt, max_retries,
                            )
                    finally:
                        await resp.aclose()

            if network_error is not None:
                await self._retry_network_or_raise(network_error, attempt, max_retries)
            elif decision is not None:
                await sleep_ms(decision.delay_ms)

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _handle_error_status(
        self,
        resp: httpx.Response,
        attempt: RequestAttempt,
        max_retries: int,
    ) -> RetryDecision:
        """Return the retry decision for a non-2xx response, or raise."""
        status = resp.status_code
        if is_retryable(status) and attempt.attempt_number < max_retries:
            decision = retry_decision(
                attempt.attempt_number,
                status_code=status,
                retry_after=resp.headers.get("Retry-After"),
            )
            _logger.warning(
                "Request failed with status %d, retrying in %dms (attempt %d/%d)",
                status, decision.delay_ms, attempt.attempt_number + 1, max_retries + 1,
            )
            await self._publish(EventType.REQUEST_RETRY, {
                "attempt": attempt.attempt_number + 1,
                "status": status,
                "reason": decision.reason.value if decision.reason else None,
                "delay_ms": decision.delay_ms,
            })
            return decision

        message = extract_error_message(resp)
        status_text = resp.reason_phrase
        await self._publish(EventType.REQUEST_FAILED, {
            "status": status,
            "attempts": attempt.attempt_number + 1,
            "message": message,
        })
        if is_retryable(status):
            raise RetryableAPIError(
                f"API request failed after {attempt.attempt_number + 1} attempts: "
                f"{status} {status_text}. {message}",
                attempts=attempt.attempt_number + 1,
                status_code=status,
                status_text=status_text,
                api_message=message,
            )
        raise NonRetryableAPIError(
            f"API request failed: {status} {status_text}. {message}",
            status_code=status,
            status_text=status_text,
            api_message=message,
        )

    async def _retry_network_or_raise(
        self,
        error: httpx.TransportError,
        attempt: RequestAttempt,
        max_retries: int,
    ) -> None:
        if attempt.attempt_number >= max_retries:
            await self._publish(EventType.REQUEST_FAILED, {
                "attempts": attempt.attempt_number + 1,
                "message": str(error),
            })
            raise NetworkError(
                "Network error: Unable to connect to the API. "
                "Please check your internet connection.",
                attempts=attempt.attempt_number + 1,
            ) from error

        decision = retry_decision(attempt.attempt_number, network_error=True)
        _logger.warning(
            "Network error (%s), retrying in %dms (attempt %d/%d)",
            type(error).__name__, decision.delay_ms,
            attempt.attempt_number + 1, max_retries + 1,
        )
        await self._publish(EventType.REQUEST_RETRY, {
            "attempt": attempt.attempt_number + 1,
            "status": None,
            "reason": decision.reason.value if decision.reason else None,
            "delay_ms": decision.delay_ms,
        })
        await sleep_ms(decision.delay_ms)

    async def _publish(self, event_type: EventType, data: dict[str, Any]) -> None:
        if self._event_bus:
            await self._event_bus.publish(event_type, data)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> RequestExecutor:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
