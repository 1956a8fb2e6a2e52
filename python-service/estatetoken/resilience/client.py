"""Composition of the resilience primitives.

A call is admitted by the circuit breaker, retried with backoff, and each
attempt is rate limited and raced against a timeout:

    breaker.execute(retry_with_backoff(with_timeout(operation())))

ResilientHTTPClient applies that stack to JSON calls against a provider API.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from ..errors import AppError, ErrorCategory
from .circuit_breaker import CircuitBreaker
from .rate_limiter import RateLimitError, TokenBucketLimiter
from .retry import RetryPolicy, retry_with_backoff
from .timeout import AbandonedOperations, TimeoutError, with_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ResiliencePolicy:
    """Which layers to apply around a call. Unset layers are skipped."""

    retry: Optional[RetryPolicy] = None
    circuit_breaker: Optional[CircuitBreaker] = None
    timeout: Optional[float] = None
    timeout_message: Optional[str] = None
    rate_limiter: Optional[TokenBucketLimiter] = None
    abandoned: Optional[AbandonedOperations] = None  # Holds attempts that lost the timeout race


async def call_resilient(
    operation: Callable[[], Awaitable[T]],
    policy: ResiliencePolicy,
) -> T:
    """Run an operation through the layers configured in a policy.

    Args:
        operation: Zero-argument async callable, invoked once per attempt
        policy: Layers to apply

    Returns:
        The operation's result
    """

    async def attempt() -> T:
        if policy.rate_limiter is not None and not await policy.rate_limiter.acquire():
            raise RateLimitError()
        if policy.timeout is not None:
            return await with_timeout(
                operation(), policy.timeout, policy.timeout_message, abandoned=policy.abandoned
            )
        return await operation()

    async def retried() -> T:
        if policy.retry is not None:
            return await retry_with_backoff(attempt, policy.retry)
        return await attempt()

    if policy.circuit_breaker is not None:
        return await policy.circuit_breaker.execute(retried)
    return await retried()


def _category_for_status(status_code: int) -> ErrorCategory:
    if status_code == 401:
        return ErrorCategory.AUTHENTICATION
    if status_code == 403:
        return ErrorCategory.AUTHORIZATION
    if status_code < 500:
        return ErrorCategory.VALIDATION
    return ErrorCategory.NETWORK


class HTTPStatusError(AppError):
    """Raised for non-2xx responses."""

    def __init__(self, status_code: int, reason: str, url: str):
        super().__init__(
            f"HTTP {status_code}: {reason}",
            category=_category_for_status(status_code),
            context={"status": status_code, "url": url},
        )
        self.status_code = status_code
        self.url = url


class ResilientHTTPClient:
    """JSON client for a provider API with resilience applied per call.

    Usage:
        policy = ResiliencePolicy(
            retry=RetryPolicy(retryable_errors=DEFAULT_TRANSIENT_ERRORS),
            circuit_breaker=registry.get("persona"),
            timeout=KYC_TIMEOUT,
        )
        async with ResilientHTTPClient("https://withpersona.com/api/v1", policy) as kyc:
            inquiry = await kyc.get_json(f"/inquiries/{inquiry_id}")
    """

    def __init__(
        self,
        base_url: str,
        policy: Optional[ResiliencePolicy] = None,
        *,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.policy = policy or ResiliencePolicy()
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "ResilientHTTPClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    async def get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET a path and decode the JSON body."""
        return await self.request_json("GET", path, params=params)

    async def post_json(self, path: str, payload: Any = None) -> Any:
        """POST a JSON payload and decode the JSON body."""
        return await self.request_json("POST", path, json=payload)

    async def request_json(self, method: str, path: str, **kwargs) -> Any:
        """Send a request through the resilience policy.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            **kwargs: Passed to httpx.AsyncClient.request

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            HTTPStatusError: For non-2xx responses
            TimeoutError: If the request exceeds the policy timeout
            AppError: For transport failures
        """
        url = str(self._client.base_url).rstrip("/") + "/" + path.lstrip("/")

        async def send() -> Any:
            try:
                response = await self._client.request(method, path, **kwargs)
            except httpx.TimeoutException as e:
                raise TimeoutError(
                    f"Request to {url} timed out", self.policy.timeout or 0.0
                ) from e
            except httpx.TransportError as e:
                raise AppError(
                    f"Network error calling {url}: {e}",
                    category=ErrorCategory.NETWORK,
                    context={"url": url},
                ) from e

            if response.is_error:
                logger.warning(f"{method} {url} returned {response.status_code}")
                raise HTTPStatusError(response.status_code, response.reason_phrase, url)

            if not response.content:
                return None
            return response.json()

        policy = self.policy
        if policy.timeout is not None and policy.timeout_message is None:
            policy = replace(policy, timeout_message=f"Request to {url} timed out")

        return await call_resilient(send, policy)
