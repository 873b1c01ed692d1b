"""
Base API Adapter for the upstream fantasy platforms.

The base adapter provides:
- One shared httpx.AsyncClient per adapter (closed by ``close()``)
- Retry with exponential backoff for transient failures (tenacity)
- A per-upstream circuit breaker (pybreaker)
- Mapping of transport/status failures to NetworkError and of malformed
  payloads to DecodeError

Usage:
    class SleeperAdapter(BaseAPIAdapter):
        source_name = "sleeper"

        async def fetch_league(self, league_id: str) -> SleeperLeague:
            payload = await self.get_json(f"/league/{league_id}", league_id=league_id)
            return self.decode(SleeperLeague, payload, league_id)
"""
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pybreaker import CircuitBreaker, CircuitBreakerError
from pydantic import BaseModel, TypeAdapter, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from warroom.core.circuit_breaker import call_with_breaker, create_breaker
from warroom.core.errors import DecodeError, NetworkError
from warroom.core.logging import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_RETRY_ATTEMPTS = 3


def is_transient(exc: BaseException) -> bool:
    """Transport errors and 5xx/429 responses are worth retrying; 4xx are not."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == 429
    return isinstance(exc, httpx.RequestError)


class BaseAPIAdapter:
    """
    Base class for adapters that fetch JSON from an upstream fantasy API.

    Attributes:
        base_url: Upstream root URL
        breaker: Circuit breaker guarding this upstream
    """

    source_name = "upstream"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        cookies: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_wait: Optional[wait_base] = None,
    ):
        """
        Args:
            base_url: Upstream root URL (no trailing slash needed)
            timeout: Request timeout in seconds
            cookies: Cookies sent with every request
            client: Pre-built client (tests pass one with a MockTransport)
            breaker: Circuit breaker (defaults to a new one named after the source)
            retry_attempts: Total attempts per request
            retry_wait: tenacity wait strategy (defaults to exponential 2-10s)
        """
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            cookies=cookies or None,
            headers={"Accept": "application/json"},
        )
        self.breaker = breaker or create_breaker(f"{self.source_name}_api")
        self.retry_attempts = retry_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    async def _fetch_with_retry(self, path: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        """
        Internal method to fetch a response with retry logic.

        Raises:
            httpx.HTTPStatusError: On HTTP errors (after retries for 5xx)
            httpx.RequestError: On network errors (after retries)
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(is_transient),
            reraise=True,
        ):
            with attempt:
                response = await self._client.get(path, params=params)
                response.raise_for_status()
        return response

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        league_id: Optional[str] = None,
    ) -> Any:
        """
        GET ``path`` and return the parsed JSON body.

        Raises:
            NetworkError: Transport failure, non-2xx status, or open breaker
            DecodeError: Body is not valid JSON
        """
        try:
            response = await call_with_breaker(self.breaker, self._fetch_with_retry, path, params)
        except CircuitBreakerError as e:
            raise NetworkError(f"{self.source_name} circuit open, skipping {path}", league_id) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"{self.source_name} returned {status} for {path}")
            raise NetworkError(f"{self.source_name} returned {status} for {path}", league_id, status) from e
        except httpx.RequestError as e:
            logger.error(f"Failed to fetch {path} from {self.source_name} after retries: {e}")
            raise NetworkError(f"{self.source_name} request failed for {path}: {e}", league_id) from e

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"{self.source_name} sent invalid JSON for {path}", league_id) from e

    def decode(self, model: Type[M], payload: Any, league_id: Optional[str] = None) -> M:
        """Validate one object payload into ``model``."""
        if payload is None:
            raise NetworkError(f"{self.source_name} has no {model.__name__}", league_id, 404)
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise DecodeError(
                f"Unexpected {model.__name__} shape from {self.source_name}: {e.error_count()} error(s)",
                league_id,
            ) from e

    def decode_list(self, model: Type[M], payload: Any, league_id: Optional[str] = None) -> List[M]:
        """Validate a JSON array payload into a list of ``model``; null means empty."""
        if payload is None:
            return []
        try:
            return TypeAdapter(List[model]).validate_python(payload)
        except ValidationError as e:
            raise DecodeError(
                f"Unexpected {model.__name__} list from {self.source_name}: {e.error_count()} error(s)",
                league_id,
            ) from e

    async def close(self) -> None:
        """Close the shared HTTP client."""
        await self._client.aclose()
