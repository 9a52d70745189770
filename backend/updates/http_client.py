"""
Retrying HTTP client for registry requests.

All registry traffic in a run (auth probes, token requests, manifest
lookups) goes through one RetryingClient so connections are pooled in a
single aiohttp session and every request follows the same retry policy.

Retry classification:
- RETRYABLE: connection errors, timeouts, HTTP 5xx, HTTP 429
- NON-RETRYABLE: any other status (returned to the caller as-is),
  malformed responses (raised immediately)
"""

import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import aiohttp

from updates.errors import RegistryRequestError, TransientNetworkError

logger = logging.getLogger(__name__)

USER_AGENT = "dockcup-update-checker"

Params = Union[Dict[str, str], Sequence[Tuple[str, str]]]


@dataclass
class RetryPolicy:
    """
    Policy for retrying transient registry failures.

    max_retries counts retries, not attempts: the default of 3 allows four
    attempts in total before the request is reported as failed.
    """
    max_retries: int = 3                    # Retries after the first attempt
    initial_delay: float = 0.5              # Delay before the first retry (seconds)
    max_delay: float = 8.0                  # Upper bound for a single delay (seconds)
    backoff_multiplier: float = 2.0         # Exponential backoff multiplier
    jitter: bool = False                    # Randomize delays (never below the previous delay)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_number: int, previous: float = 0.0) -> float:
        """
        Backoff delay before retry number `retry_number` (1-based).

        Delays never decrease from one retry to the next, jitter included.
        """
        delay = min(
            self.initial_delay * (self.backoff_multiplier ** (retry_number - 1)),
            self.max_delay
        )
        if self.jitter:
            delay *= (0.5 + random.random())  # 0.5x - 1.5x jitter
        return max(delay, previous)


@dataclass
class RegistryResponse:
    """Status, headers and body of a registry response. Header names are lowercased."""
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""

    def __post_init__(self):
        self.headers = {key.lower(): value for key, value in self.headers.items()}

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def json(self) -> Any:
        """Decode the body as JSON. Raises ValueError on empty or invalid bodies."""
        if not self.body:
            raise ValueError("response body is empty")
        return json.loads(self.body.decode("utf-8"))


def preferred_challenge(values: Sequence[str]) -> Optional[str]:
    """Pick the Bearer challenge when a registry offers several auth schemes."""
    for value in values:
        if value.strip().lower().startswith("bearer "):
            return value
    return values[0] if values else None


class AiohttpTransport:
    """Sends requests through one shared aiohttp session, created on first use."""

    def __init__(self, timeout: float = 10.0):
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        # Created lazily so the session binds to the running event loop
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"User-Agent": USER_AGENT}
            )
        return self._session

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Params] = None
    ) -> RegistryResponse:
        session = self._get_session()
        async with session.request(method, url, headers=headers, params=params) as response:
            body = await response.read()
            response_headers = dict(response.headers)
            # Registries may send one WWW-Authenticate header per scheme
            challenge = preferred_challenge(response.headers.getall("WWW-Authenticate", []))
            if challenge is not None:
                response_headers["WWW-Authenticate"] = challenge
            return RegistryResponse(
                status=response.status,
                headers=response_headers,
                body=body,
                url=str(response.url),
            )

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class RetryingClient:
    """
    Registry HTTP client with bounded retry and exponential backoff.

    Safe to share between concurrent tasks: it holds no per-request state,
    and the aiohttp session underneath handles concurrent requests.
    """

    def __init__(
        self,
        transport=None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 10.0
    ):
        """
        Initialize the client.

        Args:
            transport: Object with `async send(method, url, headers, params)`
                returning a RegistryResponse (default: AiohttpTransport)
            retry_policy: Retry configuration (default: RetryPolicy())
            timeout: Per-request timeout in seconds for the default transport
        """
        self.transport = transport if transport is not None else AiohttpTransport(timeout=timeout)
        self.retry_policy = retry_policy or RetryPolicy()

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Params] = None
    ) -> RegistryResponse:
        """
        Send a request, retrying transient failures.

        Returns:
            The first non-transient response (any status below 500 except 429)

        Raises:
            RegistryRequestError: retries exhausted, or a non-retryable client error
        """
        policy = self.retry_policy
        delay = 0.0
        last_error: Optional[TransientNetworkError] = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await self._send_once(method, url, headers, params)
            except TransientNetworkError as e:
                last_error = e
                if attempt >= policy.max_attempts:
                    break

                delay = policy.delay_for(attempt, previous=delay)
                logger.debug(
                    f"Retrying {method} {url} after {delay:.2f}s "
                    f"(attempt {attempt}/{policy.max_attempts}, error: {e})"
                )
                await asyncio.sleep(delay)

        logger.warning(f"Giving up on {method} {url} after {policy.max_attempts} attempts: {last_error}")
        raise RegistryRequestError(url, str(last_error), attempts=policy.max_attempts)

    async def _send_once(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]],
        params: Optional[Params]
    ) -> RegistryResponse:
        try:
            response = await self.transport.send(method, url, headers=headers, params=params)
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise TransientNetworkError(f"{type(e).__name__}: {e}") from e
        except aiohttp.ClientError as e:
            raise RegistryRequestError(url, f"{type(e).__name__}: {e}") from e

        if response.status == 429 or response.status >= 500:
            raise TransientNetworkError(f"HTTP {response.status}", status=response.status)
        return response

    async def close(self):
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> 'RetryingClient':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
