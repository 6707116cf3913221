"""GitHub SSH signing key provider."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from ..config import ProviderKind
from ..errors import RateLimited, SourceQueryError
from ..keys import Key
from .base import HttpProvider, parse_retry_after

logger = logging.getLogger(__name__)


class GithubKey(BaseModel):
    """An entry of the ``ssh_signing_keys`` listing."""

    key: str
    title: Optional[str] = None


class GithubProvider(HttpProvider):
    """Lists a user's SSH signing keys through the GitHub REST API.

    https://docs.github.com/en/rest/users/ssh-signing-keys#list-ssh-signing-keys-for-a-user
    """

    kind = ProviderKind.GITHUB
    accept = "application/vnd.github+json"
    api_version = "2022-11-28"

    def keys_url(self, username: str) -> str:
        return f"{self.base_url}/users/{quote(username, safe='')}/ssh_signing_keys"

    def headers(self) -> Dict[str, str]:
        headers = super().headers()
        headers["X-GitHub-Api-Version"] = self.api_version
        return headers

    def auth_headers(self) -> Dict[str, str]:
        credential = self.source.resolve_credential()
        return {"Authorization": f"Bearer {credential}"} if credential else {}

    def classify(self, response: httpx.Response) -> SourceQueryError:
        # GitHub reports exhausted rate limits as 403 as well as 429.
        if response.status_code in (403, 429) and _is_rate_limited(response):
            return RateLimited(
                f"rate limit exceeded on {self.name}",
                source=self.name,
                retry_after=parse_retry_after(response.headers),
            )
        return super().classify(response)

    def parse_keys(self, payload: List[Any]) -> List[Key]:
        keys = []
        for item in payload:
            try:
                keys.append(Key.parse(GithubKey.model_validate(item).key))
            except (ValidationError, ValueError) as exc:
                logger.warning(f"{self.name}: skipping malformed key entry: {exc}")
        return keys


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    try:
        message = str(response.json().get("message", ""))
    except (ValueError, AttributeError):
        return False
    return "rate limit" in message.lower()
