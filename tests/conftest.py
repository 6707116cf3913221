"""Shared fixtures for hanko tests."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from hanko.providers import create_client

# Real public keys; their material sorts as ED25519_D < ED25519_A < ED25519_C < ED25519_B.
ED25519_A = "AAAAC3NzaC1lZDI1NTE5AAAAIGtQUDZWhs8k/cZcykMkaoX7ZE7DXld8TP79HyddMVTS"
ED25519_B = "AAAAC3NzaC1lZDI1NTE5AAAAILWtK6WxXw7NVhbn6fTQ0dECF8y98fahSIsqKMh+sSo9"
ED25519_C = "AAAAC3NzaC1lZDI1NTE5AAAAIJHDGMF+tZQL3dcr1arPst+YP8v33Is0kAJVvyTKrxMw"
ED25519_D = "AAAAC3NzaC1lZDI1NTE5AAAAIDw32w3ciofX3/gFoyCtPWxSsWYmylwdKZ9Q/BmoBR/g"
ECDSA_A = (
    "AAAAE2VjZHNhLXNoYTItbmlzdHAyNTYAAAAIbmlzdHAyNTYAAABBBCoObGvI0R2SfxLypsqi25QOgiI1lcsAht"
    "L7AqUeVD+4mS0CQ2Nu/C8h+RHtX6tHpd+GhfGjtDXjW598Vr2j9+w="
)

Handler = Callable[[httpx.Request], httpx.Response]


def respond(
    status: int = 200,
    json: Any = None,
    headers: Optional[Dict[str, str]] = None,
    content: Optional[bytes] = None,
) -> Handler:
    """Build a handler returning a fresh response for every request."""

    def handler(request: httpx.Request) -> httpx.Response:
        if content is not None:
            return httpx.Response(status, content=content, headers=headers)
        return httpx.Response(status, json=json, headers=headers)

    return handler


def github_keys(*materials: str) -> List[Dict[str, Any]]:
    return [
        {"id": i, "key": f"ssh-ed25519 {material}", "title": f"key-{i}"}
        for i, material in enumerate(materials, start=1)
    ]


class KeyServer:
    """Fake key API answering from a table of handlers keyed by URL path.

    Handlers registered for a path are used in order; the last one keeps
    answering once the others are used up. Unknown paths answer 404.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, List[Handler]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, path: str, *handlers: Handler) -> "KeyServer":
        self.routes.setdefault(path, []).extend(handlers)
        return self

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handlers = self.routes.get(request.url.path)
        if not handlers:
            return httpx.Response(404, json={"message": "Not Found"})
        handler = handlers.pop(0) if len(handlers) > 1 else handlers[0]
        return handler(request)

    def client(self) -> httpx.AsyncClient:
        return create_client(transport=httpx.MockTransport(self.handle))

    @property
    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def key_server() -> KeyServer:
    return KeyServer()


@pytest.fixture
def no_sleep():
    """Sleep replacement recording requested delays instead of waiting."""
    delays: List[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)

    sleep.delays = delays
    return sleep


@pytest.fixture(autouse=True)
def _reset_hanko_logging():
    yield
    logging.getLogger("hanko").setLevel(logging.NOTSET)
    logging.getLogger("httpx").setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def git_global_config(tmp_path, monkeypatch):
    """Point Git configuration lookups at an empty per-test home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("GIT_CONFIG_SYSTEM", raising=False)
    return home / ".gitconfig"
