"""Base provider interface and shared HTTP handling."""

from __future__ import annotations

import abc
import logging
import time
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..config import ProviderKind, SourceConfig
from ..constants import DEFAULT_MAX_PAGES, DEFAULT_PER_PAGE, DEFAULT_TIMEOUT, USER_AGENT
from ..errors import (
    AuthError,
    BadResponse,
    NoKeys,
    NotFound,
    RateLimited,
    SourceQueryError,
    Transient,
)
from ..keys import Key

logger = logging.getLogger(__name__)

# Values above this are epoch timestamps rather than relative seconds.
_EPOCH_THRESHOLD = 1_000_000_000


def create_client(timeout: float = DEFAULT_TIMEOUT, **kwargs: Any) -> httpx.AsyncClient:
    """Create the HTTP client shared by all providers of a run."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        **kwargs,
    )


def parse_retry_after(headers: Mapping[str, str], now: Optional[float] = None) -> Optional[float]:
    """Extract a wait hint in seconds from rate limit response headers."""
    now = time.time() if now is None else now

    value = headers.get("retry-after")
    if value:
        try:
            return max(float(value), 0.0)
        except ValueError:
            pass
        try:
            return max(parsedate_to_datetime(value).timestamp() - now, 0.0)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unparsable Retry-After header: {value!r}")

    for name in ("x-ratelimit-reset", "ratelimit-reset"):
        value = headers.get(name)
        if not value:
            continue
        try:
            reset = float(value)
        except ValueError:
            logger.debug(f"Ignoring unparsable {name} header: {value!r}")
            continue
        if reset > _EPOCH_THRESHOLD:
            reset -= now
        return max(reset, 0.0)
    return None


class BaseProvider(metaclass=abc.ABCMeta):
    """Fetches the public keys a user publishes on one source."""

    kind: ProviderKind

    def __init__(self, source: SourceConfig) -> None:
        self.source = source

    @property
    def name(self) -> str:
        return self.source.name

    @abc.abstractmethod
    async def fetch_keys(self, username: str) -> List[Key]:
        """Return the keys of ``username``.

        Raises:
            SourceQueryError: A classified failure (``NotFound``, ``NoKeys``,
                ``RateLimited``, ``Transient``, ``AuthError``, ``BadResponse``).
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class HttpProvider(BaseProvider):
    """Provider backed by a paginated REST endpoint."""

    accept = "application/json"

    def __init__(
        self,
        source: SourceConfig,
        client: httpx.AsyncClient,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        super().__init__(source)
        self._client = client
        self.max_pages = max_pages
        self.base_url = (source.url or "").rstrip("/")

    @abc.abstractmethod
    def keys_url(self, username: str) -> str:
        """URL of the first page of ``username``'s keys."""

    @abc.abstractmethod
    def parse_keys(self, payload: List[Any]) -> List[Key]:
        """Convert one decoded page into keys, skipping unusable entries."""

    def auth_headers(self) -> Dict[str, str]:
        return {}

    def headers(self) -> Dict[str, str]:
        headers = {"Accept": self.accept}
        headers.update(self.auth_headers())
        return headers

    def next_url(self, response: httpx.Response) -> Optional[str]:
        """Return the next page URL from the ``Link`` header, if any."""
        link = response.links.get("next")
        if not link or not link.get("url"):
            return None
        return str(response.url.join(link["url"]))

    def classify(self, response: httpx.Response) -> SourceQueryError:
        """Map an unsuccessful response onto the error taxonomy."""
        status = response.status_code
        if status == 404:
            return NotFound(f"user not found on {self.name}", source=self.name)
        if status in (401, 403):
            return AuthError(f"{self.name} rejected the credentials ({status})", source=self.name)
        if status == 429:
            return RateLimited(
                f"rate limited by {self.name}",
                source=self.name,
                retry_after=parse_retry_after(response.headers),
            )
        if status == 408 or status >= 500:
            return Transient(f"{self.name} answered {status}", source=self.name)
        return BadResponse(f"unexpected status {status} from {self.name}", source=self.name)

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        logger.debug(f"GET {url} ({self.name})")
        try:
            response = await self._client.get(url, params=params, headers=self.headers())
        except httpx.TimeoutException as exc:
            raise Transient(f"request to {self.name} timed out: {exc}", source=self.name) from exc
        except (httpx.TooManyRedirects, httpx.DecodingError) as exc:
            raise BadResponse(f"unusable response from {self.name}: {exc}", source=self.name) from exc
        except httpx.RequestError as exc:
            raise Transient(f"request to {self.name} failed: {exc}", source=self.name) from exc
        if response.is_success:
            return response
        raise self.classify(response)

    def _decode(self, response: httpx.Response) -> List[Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise BadResponse(f"invalid JSON from {self.name}", source=self.name) from exc
        if not isinstance(payload, list):
            raise BadResponse(f"expected a list of keys from {self.name}", source=self.name)
        return payload

    async def fetch_keys(self, username: str) -> List[Key]:
        url: Optional[str] = self.keys_url(username)
        params: Optional[Dict[str, Any]] = {"per_page": DEFAULT_PER_PAGE}
        visited: set[str] = set()
        keys: List[Key] = []
        pages = 0

        while url is not None:
            if pages >= self.max_pages:
                logger.warning(
                    f"{self.name}: stopped after {self.max_pages} pages for {username}, "
                    "keys may be incomplete"
                )
                break
            response = await self._get(url, params=params)
            pages += 1
            # Redirects may land on a page that was already read.
            landed = str(response.url)
            if landed in visited:
                logger.warning(f"{self.name}: pagination loops back to {landed}, stopping")
                break
            visited.update((url, landed))
            keys.extend(self.parse_keys(self._decode(response)))

            # Follow-up URLs carry their own query string.
            params = None
            url = self.next_url(response)
            if url is not None and url in visited:
                logger.warning(f"{self.name}: pagination loops back to {url}, stopping")
                break

        if not keys:
            raise NoKeys(f"{username} has no signing keys on {self.name}", source=self.name)
        return keys
