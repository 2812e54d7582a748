"""
HTTP plumbing shared by outbound REST collaborators.

Timeouts, network errors and RETRY_STATUS_CODES are retried with tenacity;
whatever status is left after that is mapped onto the APIError family so
adapters only ever catch one exception type.
"""
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass
class APIResponse:
    status_code: int
    data: Any
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class APIError(Exception):
    """Base API error"""

    def __init__(self, message: str, status_code: Optional[int] = None, request_id: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.request_id = request_id
        super().__init__(message)

    def __str__(self):
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


class AuthenticationError(APIError):
    pass


class NotFoundError(APIError):
    pass


class ServerError(APIError):
    pass


class _TransientStatus(APIError):
    """Retryable status; unwrapped into a regular APIError once retries run out."""

    def __init__(self, response: APIResponse):
        super().__init__(f"Transient status {response.status_code}", response.status_code, response.request_id)
        self.response = response


def _error_class(status_code: int) -> type:
    if status_code in (401, 403):
        return AuthenticationError
    if status_code == 404:
        return NotFoundError
    if status_code == 429 or status_code >= 500:
        return ServerError
    return APIError


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except json.JSONDecodeError:
        return None


class BaseAPIClient:
    """
    Bearer-token JSON client; subclasses add one method per remote endpoint
    on top of ``_request``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        debug: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API base URL, endpoints are appended to it
            timeout: per-attempt timeout in seconds
            max_retries: retries after the first attempt
            retry_delay: base delay of the exponential backoff
            headers: extra default headers
            auth_token: bearer token
            debug: log every request and response
            transport: custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.debug = debug
        self._transport = transport

        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "Ticketing-Payment-Bridge/1.0",
        }
        if headers:
            self.default_headers.update(headers)
        if auth_token:
            self.default_headers["Authorization"] = f"Bearer {auth_token}"

        self._client: Optional[httpx.AsyncClient] = None

    @property
    async def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _raise_for_status(self, response: APIResponse) -> None:
        message = f"API request failed with status {response.status_code}"
        if isinstance(response.data, dict):
            message = response.data.get("message") or response.data.get("error") or message
        raise _error_class(response.status_code)(message, response.status_code, response.request_id)

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]],
        json_data: Optional[Dict[str, Any]],
        headers: Dict[str, str],
    ) -> APIResponse:
        client = await self.client
        started = time.perf_counter()
        response = await client.request(method, url, params=params, json=json_data, headers=headers)
        api_response = APIResponse(
            status_code=response.status_code,
            data=_decode(response),
            elapsed_ms=(time.perf_counter() - started) * 1000,
            request_id=response.headers.get("x-request-id"),
        )
        if self.debug:
            logger.debug(
                f"API {method} {url} -> {api_response.status_code}",
                extra={"elapsed_ms": api_response.elapsed_ms, "request_id": api_response.request_id},
            )
        if api_response.status_code in RETRY_STATUS_CODES:
            raise _TransientStatus(api_response)
        if api_response.is_error:
            self._raise_for_status(api_response)
        return api_response

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> APIResponse:
        """
        Send one logical request.

        Raises:
            APIError: or a subclass, once retries are exhausted
        """
        url = self._build_url(endpoint)
        request_headers = {**self.default_headers, **(headers or {})}

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay, min=self.retry_delay, max=self.retry_delay * 8),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, _TransientStatus)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._send(method, url, params, json_data, request_headers)
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout after {self.timeout}s") from exc
        except httpx.NetworkError as exc:
            raise APIError(f"Network error: {exc}") from exc
        except _TransientStatus as exc:
            self._raise_for_status(exc.response)
        raise APIError("Request was not attempted")
