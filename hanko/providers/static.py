"""Provider for keys declared directly in the configuration."""

from __future__ import annotations

import logging
from typing import List

from ..config import ProviderKind
from ..errors import NoKeys, NotFound
from ..keys import Key
from .base import BaseProvider

logger = logging.getLogger(__name__)


class StaticProvider(BaseProvider):
    """Serves the ``keys`` mapping of a static source. No network access."""

    kind = ProviderKind.STATIC

    def keys_for(self, username: str) -> List[Key]:
        lines = self.source.keys.get(username)
        if lines is None:
            raise NotFound(f"{username} is not declared in {self.name}", source=self.name)
        keys = []
        for line in lines:
            try:
                keys.append(Key.parse(line))
            except ValueError as exc:
                logger.warning(f"{self.name}: skipping key of {username}: {exc}")
        if not keys:
            raise NoKeys(f"{username} has no keys in {self.name}", source=self.name)
        return keys

    async def fetch_keys(self, username: str) -> List[Key]:
        return self.keys_for(username)
