"""One update run: resolve every signer and persist the allowed signers file."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import httpx
from dulwich.config import StackedConfig
from pydantic import BaseModel

from .allowed_signers import AllowedSignersDocument, WriteResult
from .config import HankoConfig, check_source_references
from .errors import ConfigurationError
from .providers import build_providers, create_client
from .resolve import Aggregation, Sleep, aggregate

logger = logging.getLogger(__name__)


class UpdateResult(BaseModel):
    """Outcome of an update run."""

    path: Path
    aggregation: Aggregation
    write_result: WriteResult
    duration: float = 0.0

    @property
    def failed(self) -> bool:
        return self.aggregation.all_failed

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


def git_allowed_signers_path() -> Optional[Path]:
    """Return Git's ``gpg.ssh.allowedSignersFile`` setting, if any.

    Only the global and system Git configuration files are consulted.
    """
    try:
        value = StackedConfig.default().get((b"gpg", b"ssh"), b"allowedSignersFile")
    except KeyError:
        return None
    except (OSError, ValueError) as exc:
        logger.warning(f"Could not read the Git configuration: {exc}")
        return None
    if not value:
        return None
    return Path(value.decode("utf-8")).expanduser()


def resolve_output_path(
    config: HankoConfig, path: Optional[Path] = None
) -> Path:
    """Pick the allowed signers path from the argument, environment, config or Git."""
    env_path = os.getenv("HANKO_ALLOWED_SIGNERS")
    chosen = path or env_path or config.allowed_signers or git_allowed_signers_path()
    if not chosen:
        raise ConfigurationError(
            "No allowed signers file given: pass --file, set HANKO_ALLOWED_SIGNERS, "
            "add allowed_signers to the configuration or set gpg.ssh.allowedSignersFile "
            "in Git"
        )
    return Path(chosen).expanduser()


async def resolve_config(
    config: HankoConfig,
    client: httpx.AsyncClient,
    now: Optional[datetime] = None,
    sleep: Sleep = asyncio.sleep,
) -> Aggregation:
    """Resolve all configured signers using ``client`` for network access."""
    sources = config.all_sources
    check_source_references(config.signers, sources)
    used = {name for signer in config.signers for name in signer.sources}
    providers = build_providers(
        (sources[name] for name in sorted(used)), client, config.resolution
    )
    logger.debug(f"Initialized providers: {list(providers.values())}")
    return await aggregate(
        config.signers,
        providers,
        config.resolution.retry_policy(),
        now=now,
        sleep=sleep,
    )


async def update_allowed_signers(
    config: HankoConfig,
    path: Path,
    client: Optional[httpx.AsyncClient] = None,
    now: Optional[datetime] = None,
    sleep: Sleep = asyncio.sleep,
) -> UpdateResult:
    """Resolve all signers and write ``path`` if its content changed.

    The file is only touched after every resolution task has finished.

    Raises:
        ConfigurationError: Before any request if the configuration is invalid.
        OSError: If the allowed signers file cannot be written.
    """
    start = time.monotonic()
    if client is None:
        async with create_client(config.resolution.timeout) as own_client:
            aggregation = await resolve_config(config, own_client, now=now, sleep=sleep)
    else:
        aggregation = await resolve_config(config, client, now=now, sleep=sleep)

    if aggregation.all_failed:
        logger.error(
            f"Every signer failed to resolve: {', '.join(aggregation.failed_signers)}"
        )

    document = AllowedSignersDocument(aggregation.entries)
    write_result = document.write(path)
    duration = time.monotonic() - start
    logger.info(
        f"Update of {path} finished in {duration:.2f}s: {write_result.value}, "
        f"{len(document)} entries, {len(aggregation.warnings)} warnings, "
        f"{len(aggregation.errors)} errors"
    )
    return UpdateResult(
        path=path,
        aggregation=aggregation,
        write_result=write_result,
        duration=duration,
    )
