"""GitLab SSH key provider."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from ..config import ProviderKind
from ..keys import Key
from .base import HttpProvider

logger = logging.getLogger(__name__)

SIGNING_USAGES = ("signing", "auth_and_signing")


class GitlabKey(BaseModel):
    """An entry of the ``users/:username/keys`` listing."""

    key: str
    expires_at: Optional[datetime] = None
    usage_type: Literal["auth", "signing", "auth_and_signing"] = "auth_and_signing"

    @property
    def is_signing(self) -> bool:
        return self.usage_type in SIGNING_USAGES


class GitlabProvider(HttpProvider):
    """Lists a user's SSH keys through the GitLab v4 REST API.

    Only keys usable for signing are returned; ``expires_at`` is kept so that
    expired keys can be filtered out during resolution.
    """

    kind = ProviderKind.GITLAB
    api_version = "v4"

    def keys_url(self, username: str) -> str:
        return f"{self.base_url}/api/{self.api_version}/users/{quote(username, safe='')}/keys"

    def auth_headers(self) -> Dict[str, str]:
        credential = self.source.resolve_credential()
        return {"PRIVATE-TOKEN": credential} if credential else {}

    def next_url(self, response: httpx.Response) -> Optional[str]:
        url = super().next_url(response)
        if url is not None:
            return url
        next_page = response.headers.get("x-next-page", "").strip()
        if next_page:
            return str(response.url.copy_set_param("page", next_page))
        return None

    def parse_keys(self, payload: List[Any]) -> List[Key]:
        keys = []
        for item in payload:
            try:
                api_key = GitlabKey.model_validate(item)
                if not api_key.is_signing:
                    continue
                keys.append(Key.parse(api_key.key, expires_at=api_key.expires_at))
            except (ValidationError, ValueError) as exc:
                logger.warning(f"{self.name}: skipping malformed key entry: {exc}")
        return keys
