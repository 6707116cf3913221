"""Command line interface for hanko."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from pydantic import BaseModel

from hanko.allowed_signers import WriteResult
from hanko.config import BUILTIN_SOURCES, HankoConfig, load_config, save_config
from hanko.errors import ConfigurationError
from hanko.update import UpdateResult, resolve_output_path, update_allowed_signers

app = typer.Typer(help="Keep a Git allowed signers file in sync with published SSH keys")

# Command groups
signer_app = typer.Typer(help="Commands for managing signers")
source_app = typer.Typer(help="Commands for inspecting sources")

app.add_typer(signer_app, name="signer")
app.add_typer(source_app, name="source")

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


class GlobalOptions(BaseModel):
    """Options shared by all commands."""

    config: Optional[Path] = None
    file: Optional[Path] = None
    verbose: int = 0


def setup_logging(verbosity: int) -> None:
    """Configure logging: warnings by default, more with each ``-v``."""
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger("hanko").setLevel(level)
    # HTTP client chatter only on -vvv
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbosity >= 3 else logging.WARNING)


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _load(options: GlobalOptions, missing_ok: bool = False) -> HankoConfig:
    try:
        return load_config(options.config, missing_ok=missing_ok)
    except ConfigurationError as exc:
        _fail(f"Configuration error: {exc}")


def _run_update(options: GlobalOptions, config: HankoConfig) -> None:
    try:
        path = resolve_output_path(config, options.file)
        result = asyncio.run(update_allowed_signers(config, path))
    except ConfigurationError as exc:
        _fail(f"Configuration error: {exc}")
    except OSError as exc:
        _fail(f"Failed to write allowed signers file: {exc}")

    _report(result)
    if result.exit_code:
        raise typer.Exit(code=result.exit_code)


def _report(result: UpdateResult) -> None:
    aggregation = result.aggregation
    if result.write_result is WriteResult.WRITTEN:
        typer.echo(f"Updated {result.path} ({len(aggregation.entries)} entries)")
    elif result.write_result is WriteResult.UNCHANGED:
        typer.echo(f"{result.path} is up to date ({len(aggregation.entries)} entries)")
    else:
        typer.secho(
            f"No allowed signers resolved, {result.path} left untouched",
            fg=typer.colors.YELLOW,
        )
    if aggregation.issues:
        typer.echo(
            f"{len(aggregation.warnings)} warnings, {len(aggregation.errors)} errors"
        )
    if result.failed:
        typer.secho("Every signer failed to resolve", fg=typer.colors.RED, err=True)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", envvar="HANKO_CONFIG", help="The configuration file"
    ),
    file: Optional[Path] = typer.Option(
        None,
        "--file",
        "-f",
        envvar="HANKO_ALLOWED_SIGNERS",
        help="The allowed signers file",
    ),
    verbose: int = typer.Option(
        0, "--verbose", "-v", count=True, help="Use verbose output (repeatable)"
    ),
) -> None:
    """hanko CLI entry point."""
    setup_logging(verbose)
    ctx.obj = GlobalOptions(config=config, file=file, verbose=verbose)


@app.command("update")
def update(ctx: typer.Context) -> None:
    """
    Update the allowed signers file.

    Fetches the keys of every configured signer from its sources and rewrites
    the allowed signers file if its content changed. Sources that fail only
    produce warnings; the command fails when the configuration is invalid or
    every signer failed.

    Example:
        hanko --file ~/.config/git/allowed_signers update
    """
    options: GlobalOptions = ctx.obj
    _run_update(options, _load(options))


@signer_app.command("add")
def signer_add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Username of the signer on its sources"),
    principals: List[str] = typer.Argument(..., help="Principals of the signer"),
    source: Optional[List[str]] = typer.Option(
        None, "--source", "-s", help="Source to get keys from (default: github)"
    ),
    no_update: bool = typer.Option(
        False, "--no-update", help="Do not update the allowed signers file"
    ),
) -> None:
    """
    Add an allowed signer to the configuration.

    Adding a signer identical to an existing one changes nothing.

    Example:
        hanko signer add octocat octocat@github.com
        hanko signer add tanuki tanuki@example.com --source gitlab --no-update
    """
    options: GlobalOptions = ctx.obj
    config = _load(options, missing_ok=True)
    try:
        added = config.add_signer(name, principals, source or None)
    except ConfigurationError as exc:
        _fail(f"Configuration error: {exc}")

    if added:
        try:
            path = save_config(config, options.config)
        except OSError as exc:
            _fail(f"Failed to save configuration: {exc}")
        typer.echo(f"Added signer {name} to {path}")
    else:
        typer.echo(f"Signer {name} is already configured")

    if not no_update:
        _run_update(options, config)


@signer_app.command("list")
def signer_list(ctx: typer.Context) -> None:
    """List configured signers with their principals and sources."""
    config = _load(ctx.obj)
    if not config.signers:
        typer.echo("No signers configured")
        return
    for signer in config.signers:
        typer.echo(
            f"{signer.name}\t{','.join(signer.principals)}\t{','.join(signer.sources)}"
        )


@source_app.command("list")
def source_list(ctx: typer.Context) -> None:
    """List built-in and configured sources."""
    config = _load(ctx.obj, missing_ok=True)
    builtin = {source.name for source in BUILTIN_SOURCES}
    for source in config.all_sources.values():
        suffix = " (built-in)" if source.name in builtin else ""
        typer.echo(f"{source.name}\t{source.provider.value}\t{source.url or '-'}{suffix}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
