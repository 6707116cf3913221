"""Provider factory and initialization."""

from __future__ import annotations

from typing import Dict, Iterable, Optional

import httpx

from ..config import ProviderKind, ResolutionConfig, SourceConfig
from .base import BaseProvider, HttpProvider, create_client, parse_retry_after
from .github import GithubProvider
from .gitlab import GitlabProvider
from .static import StaticProvider


def get_provider(
    source: SourceConfig,
    client: Optional[httpx.AsyncClient] = None,
    resolution: Optional[ResolutionConfig] = None,
) -> BaseProvider:
    """Factory function to build the provider for ``source``."""

    resolution = resolution or ResolutionConfig()
    if source.provider is ProviderKind.STATIC:
        return StaticProvider(source)

    if client is None:
        raise ValueError(f"source {source.name} needs an HTTP client")
    if source.provider is ProviderKind.GITHUB:
        return GithubProvider(source, client, max_pages=resolution.max_pages)
    elif source.provider is ProviderKind.GITLAB:
        return GitlabProvider(source, client, max_pages=resolution.max_pages)
    else:
        raise ValueError(f"Unsupported provider: {source.provider}")


def build_providers(
    sources: Iterable[SourceConfig],
    client: Optional[httpx.AsyncClient] = None,
    resolution: Optional[ResolutionConfig] = None,
) -> Dict[str, BaseProvider]:
    """Build one provider per source, keyed by source name."""
    return {source.name: get_provider(source, client, resolution) for source in sources}


__all__ = [
    "BaseProvider",
    "HttpProvider",
    "GithubProvider",
    "GitlabProvider",
    "StaticProvider",
    "build_providers",
    "create_client",
    "get_provider",
    "parse_retry_after",
]
