"""Concurrent resolution of signers into allowed signers entries."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, Dict, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import SignerConfig
from .errors import ConfigurationError, NoKeys, NotFound, SourceQueryError
from .keys import Key, ResolvedEntry
from .providers import BaseProvider
from .utils.retry import CallState, RetryingCall, RetryPolicy

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class IssueLevel(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class Issue(BaseModel):
    """A classified problem encountered while resolving a signer."""

    model_config = ConfigDict(frozen=True)

    level: IssueLevel
    signer: str
    source: Optional[str] = None
    kind: str
    message: str
    attempts: int = 0

    def __str__(self) -> str:
        where = f"{self.signer}@{self.source}" if self.source else self.signer
        return f"{where}: {self.message}"


class SignerResolution(BaseModel):
    """Entries and issues produced for one signer."""

    signer: SignerConfig
    entries: FrozenSet[ResolvedEntry] = frozenset()
    issues: List[Issue] = Field(default_factory=list)
    failed: bool = False


class Aggregation(BaseModel):
    """The combined outcome of resolving every configured signer."""

    entries: FrozenSet[ResolvedEntry] = frozenset()
    issues: List[Issue] = Field(default_factory=list)
    resolutions: List[SignerResolution] = Field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        """``True`` if there was at least one signer and every signer failed."""
        return bool(self.resolutions) and all(r.failed for r in self.resolutions)

    @property
    def failed_signers(self) -> List[str]:
        return [r.signer.name for r in self.resolutions if r.failed]

    @property
    def warnings(self) -> List[Issue]:
        return [i for i in self.issues if i.level is IssueLevel.WARNING]

    @property
    def errors(self) -> List[Issue]:
        return [i for i in self.issues if i.level is IssueLevel.ERROR]


def providers_for(
    signer: SignerConfig, providers: Mapping[str, BaseProvider]
) -> List[BaseProvider]:
    """Return the providers of ``signer`` in configured order.

    Raises ``ConfigurationError`` if a source name is unknown.
    """
    missing = [name for name in signer.sources if name not in providers]
    if missing:
        raise ConfigurationError(
            f"Signer {signer.name} references missing sources: {', '.join(sorted(missing))}"
        )
    return [providers[name] for name in signer.sources]


def _issue_for(signer: SignerConfig, call: RetryingCall, error: SourceQueryError) -> Issue:
    if isinstance(error, (NotFound, NoKeys)):
        level = IssueLevel.WARNING
        message = error.message
    else:
        level = IssueLevel.ERROR
        message = error.message
        if error.retryable:
            message = f"{message} (gave up after {call.attempts} attempts)"
    return Issue(
        level=level,
        signer=signer.name,
        source=error.source,
        kind=error.kind,
        message=message,
        attempts=call.attempts,
    )


async def resolve_signer(
    signer: SignerConfig,
    providers: Mapping[str, BaseProvider],
    policy: Optional[RetryPolicy] = None,
    now: Optional[datetime] = None,
    sleep: Sleep = asyncio.sleep,
) -> SignerResolution:
    """Query every source of ``signer`` concurrently and merge the results."""
    selected = providers_for(signer, providers)
    now = now or datetime.now(timezone.utc)

    calls = [
        RetryingCall(
            partial(provider.fetch_keys, signer.name),
            policy=policy,
            sleep=sleep,
            label=f"{signer.name}@{provider.name}",
        )
        for provider in selected
    ]
    outcomes = await asyncio.gather(*(call.run() for call in calls), return_exceptions=True)

    issues: List[Issue] = []
    keys: Dict[tuple, Key] = {}
    errored = 0
    for provider, call, outcome in zip(selected, calls, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error(
                f"{signer.name}@{provider.name}: query failed unexpectedly", exc_info=outcome
            )
            issues.append(
                Issue(
                    level=IssueLevel.ERROR,
                    signer=signer.name,
                    source=provider.name,
                    kind="internal",
                    message=f"{type(outcome).__name__}: {outcome}",
                    attempts=call.attempts,
                )
            )
            errored += 1
            continue

        if call.state is CallState.SUCCESS:
            for key in call.result or []:
                if key.is_expired(now):
                    logger.info(
                        f"{signer.name}@{provider.name}: skipping key expired at {key.expires_at}"
                    )
                    continue
                keys.setdefault(key.identity, key)
            continue

        error = call.error
        if error.source is None:
            error.source = provider.name
        issue = _issue_for(signer, call, error)
        issues.append(issue)
        if issue.level is IssueLevel.WARNING:
            logger.warning(str(issue))
        else:
            errored += 1
            logger.error(str(issue))

    entries = frozenset(
        ResolvedEntry(principal=principal, key=key)
        for principal in signer.principals
        for key in keys.values()
    )
    failed = bool(calls) and errored == len(calls)
    if failed:
        logger.error(f"All sources failed for signer {signer.name}")
    else:
        logger.debug(f"Resolved {len(keys)} keys for signer {signer.name}")
    return SignerResolution(signer=signer, entries=entries, issues=issues, failed=failed)


async def aggregate(
    signers: List[SignerConfig],
    providers: Mapping[str, BaseProvider],
    policy: Optional[RetryPolicy] = None,
    now: Optional[datetime] = None,
    sleep: Sleep = asyncio.sleep,
) -> Aggregation:
    """Resolve all ``signers`` concurrently and union their entries.

    Source references are checked for every signer before any request is made.
    A failing signer is recorded and never aborts the others.
    """
    for signer in signers:
        providers_for(signer, providers)
    now = now or datetime.now(timezone.utc)

    results = await asyncio.gather(
        *(resolve_signer(s, providers, policy, now=now, sleep=sleep) for s in signers),
        return_exceptions=True,
    )

    resolutions: List[SignerResolution] = []
    for signer, result in zip(signers, results):
        if isinstance(result, SignerResolution):
            resolutions.append(result)
            continue
        if not isinstance(result, Exception):
            raise result
        logger.error(f"Resolving signer {signer.name} failed unexpectedly", exc_info=result)
        resolutions.append(
            SignerResolution(
                signer=signer,
                issues=[
                    Issue(
                        level=IssueLevel.ERROR,
                        signer=signer.name,
                        kind="internal",
                        message=f"{type(result).__name__}: {result}",
                    )
                ],
                failed=True,
            )
        )

    entries: FrozenSet[ResolvedEntry] = frozenset().union(*(r.entries for r in resolutions))
    issues = [issue for r in resolutions for issue in r.issues]
    return Aggregation(entries=entries, issues=issues, resolutions=resolutions)
