"""Configuration models and loading for hanko."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .constants import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_PAGES,
    DEFAULT_SOURCE_NAME,
    DEFAULT_TIMEOUT,
    GITHUB_API_URL,
    GITLAB_URL,
)
from .errors import ConfigurationError
from .utils.fs import atomic_write
from .utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    """The closed set of supported key providers."""

    GITHUB = "github"
    GITLAB = "gitlab"
    STATIC = "static"


class SourceConfig(BaseModel):
    """A named key source."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    provider: ProviderKind
    url: Optional[str] = None
    credential: Optional[str] = None
    credential_env: Optional[str] = None
    keys: Dict[str, List[str]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_provider_fields(self) -> "SourceConfig":
        if self.provider is ProviderKind.STATIC:
            if self.url:
                raise ValueError(f"static source {self.name} does not take a url")
        else:
            if not self.url:
                raise ValueError(f"source {self.name} requires a url")
            if self.keys:
                raise ValueError(f"only static sources can declare keys ({self.name})")
        return self

    def resolve_credential(self) -> Optional[str]:
        """Return the credential, reading ``credential_env`` if set."""
        if self.credential:
            return self.credential
        if self.credential_env:
            return os.getenv(self.credential_env) or None
        return None


class SignerConfig(BaseModel):
    """A tracked identity: its principals and the sources its keys come from."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    principals: List[str] = Field(min_length=1)
    sources: List[str] = Field(
        default_factory=lambda: [DEFAULT_SOURCE_NAME], min_length=1
    )

    @field_validator("principals")
    @classmethod
    def _check_principals(cls, principals: List[str]) -> List[str]:
        for principal in principals:
            if not principal or any(c.isspace() or c in ',"' for c in principal):
                raise ValueError(f"invalid principal {principal!r}")
        if len(set(principals)) != len(principals):
            raise ValueError("principals must be unique within a signer")
        return principals

    def matches(self, other: "SignerConfig") -> bool:
        """Return ``True`` if both describe the same signer, ignoring order."""
        return (
            self.name == other.name
            and set(self.principals) == set(other.principals)
            and set(self.sources) == set(other.sources)
        )


class ResolutionConfig(BaseModel):
    """Operator-tunable limits for network resolution."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(DEFAULT_MAX_ATTEMPTS, ge=1)
    max_pages: int = Field(DEFAULT_MAX_PAGES, ge=1)
    timeout: float = Field(DEFAULT_TIMEOUT, gt=0)
    backoff_base: float = Field(1.0, ge=0)
    backoff_factor: float = Field(2.0, ge=1)
    max_delay: float = Field(60.0, ge=0)
    jitter: float = Field(0.5, ge=0)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            backoff_factor=self.backoff_factor,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )


BUILTIN_SOURCES = (
    SourceConfig(name="github", provider=ProviderKind.GITHUB, url=GITHUB_API_URL),
    SourceConfig(name="gitlab", provider=ProviderKind.GITLAB, url=GITLAB_URL),
)


class HankoConfig(BaseModel):
    """Top-level configuration model.

    ``sources`` holds user-defined sources only; built-in sources are added by
    :attr:`all_sources`.
    """

    model_config = ConfigDict(extra="forbid")

    allowed_signers: Optional[Path] = None
    signers: List[SignerConfig] = Field(default_factory=list)
    sources: List[SourceConfig] = Field(default_factory=list)
    resolution: ResolutionConfig = ResolutionConfig()

    @property
    def all_sources(self) -> Dict[str, SourceConfig]:
        sources = {source.name: source for source in BUILTIN_SOURCES}
        sources.update((source.name, source) for source in self.sources)
        return sources

    def check_semantics(self) -> None:
        """Raise ``ConfigurationError`` for problems pydantic cannot see."""
        builtin_names = {source.name for source in BUILTIN_SOURCES}
        seen: set[str] = set()
        for source in self.sources:
            if source.name in builtin_names:
                raise ConfigurationError(
                    f"Source {source.name} redefines a built-in source"
                )
            if source.name in seen:
                raise ConfigurationError(f"Duplicate source name: {source.name}")
            seen.add(source.name)
        check_source_references(self.signers, self.all_sources)

    def find_signer(self, name: str) -> Optional[SignerConfig]:
        return next((s for s in self.signers if s.name == name), None)

    def add_signer(
        self,
        name: str,
        principals: List[str],
        sources: Optional[List[str]] = None,
    ) -> bool:
        """Add a signer, returning ``False`` if an identical one already exists.

        Raises ``ConfigurationError`` if a source is unknown or a different
        signer with the same name is configured.
        """
        try:
            signer = SignerConfig(
                name=name,
                principals=principals,
                sources=sources or [DEFAULT_SOURCE_NAME],
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid signer {name}: {exc}") from exc
        check_source_references([signer], self.all_sources)

        existing = self.find_signer(name)
        if existing is not None:
            if existing.matches(signer):
                logger.info(f"Signer {name} is already configured")
                return False
            raise ConfigurationError(
                f"A different signer named {name} is already configured"
            )
        self.signers.append(signer)
        return True


def check_source_references(
    signers: Iterable[SignerConfig], sources: Dict[str, SourceConfig]
) -> None:
    """Raise ``ConfigurationError`` if any signer references an unknown source."""
    missing = sorted(
        {name for signer in signers for name in signer.sources if name not in sources}
    )
    if missing:
        raise ConfigurationError(f"Missing sources: {', '.join(missing)}")


def default_config_path() -> Path:
    """Config location following the XDG base directory convention."""
    xdg_config_home = os.getenv("XDG_CONFIG_HOME")
    base = Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"
    return base / "hanko" / "config.yaml"


def resolve_config_path(path: Optional[Path] = None) -> Path:
    env_path = os.getenv("HANKO_CONFIG")
    return Path(path or env_path or default_config_path()).expanduser()


def parse_config(data: Optional[dict]) -> HankoConfig:
    """Validate raw configuration data, raising ``ConfigurationError``."""
    if data is not None and not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping")
    try:
        config = HankoConfig(**(data or {}))
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
    config.check_semantics()
    return config


def load_config(path: Optional[Path] = None, missing_ok: bool = False) -> HankoConfig:
    """Load configuration from a YAML file.

    Args:
        path: Optional path to config file. Falls back to the HANKO_CONFIG env
            variable or ``$XDG_CONFIG_HOME/hanko/config.yaml``.
        missing_ok: Return an empty configuration when the file does not exist.
    """

    config_path = resolve_config_path(path)
    if not config_path.exists():
        if missing_ok:
            logger.info(f"Configuration file {config_path} does not exist yet")
            return HankoConfig()
        raise ConfigurationError(f"Configuration file {config_path} does not exist")

    logger.debug(f"Loading configuration from {config_path}")
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse {config_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Failed to read {config_path}: {exc}") from exc
    return parse_config(data)


def save_config(config: HankoConfig, path: Optional[Path] = None) -> Path:
    """Atomically write ``config`` back to YAML. Built-in sources are not written."""
    config_path = resolve_config_path(path)
    data = config.model_dump(mode="json", exclude_defaults=True, exclude_none=True)
    content = yaml.safe_dump(data, sort_keys=False)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write(config_path, content)
    logger.info(f"Saved configuration to {config_path}")
    return config_path

