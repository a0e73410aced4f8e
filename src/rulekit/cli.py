from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterator, List, Mapping, Optional
import json
import logging
import sys
import urllib.request

import typer
from pydantic import ValidationError

from rulekit import __version__
from rulekit.bundle import bundled_source, directory_source
from rulekit.config import RulekitConfig, TomlTable, resolve_config
from rulekit.documents import DocumentKind
from rulekit.errors import RulekitError
from rulekit.fetch import check_cache_dir, fetch_archive
from rulekit.layout import AssetLayout, discover
from rulekit.lint import FINDING_KINDS, lint_corpus
from rulekit.placeholders import placeholder_inventory
from rulekit.report import RENDERERS, STDOUT_ALIAS, write_text_to_target
from rulekit.schema import InventoryEntryDTO
from rulekit.sync import FileState, SyncAction, SyncPlan, install, installation_status, sync

app = typer.Typer(add_completion=False, help="Lint, install and sync AI assistant rule/command/template documents.")

DEFAULT_CACHE_REL_PATH = Path(".rulekit/cache")
_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format=_LOG_FORMAT, stream=sys.stderr, force=True)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"rulekit {__version__}")
        raise typer.Exit(code=0)


@app.callback()
def main(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="-v for info, -vv for debug logging."),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit."
    ),
) -> None:
    _configure_logging(verbose)


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except RulekitError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=2) from exc


def _resolve(root: Path, config: Optional[Path], overrides: TomlTable | None = None) -> tuple[RulekitConfig, AssetLayout]:
    resolved = resolve_config(root=root, config_path=config, overrides=overrides)
    return resolved, AssetLayout.from_config(root, resolved)


def _parse_kind(value: Optional[str]) -> DocumentKind | None:
    if value is None:
        return None
    try:
        return DocumentKind.parse(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _context_urlopen(ctx: typer.Context) -> Callable[..., object]:
    obj = ctx.obj
    if isinstance(obj, Mapping):
        candidate = obj.get("urlopen")
        if callable(candidate):
            return candidate
    return urllib.request.urlopen


def _echo_plan(plan: SyncPlan, *, dry_run: bool, echo_fn: Callable[[str], None] = typer.echo) -> None:
    prefix = "DRY RUN: " if dry_run else ""
    for item in plan.items:
        if item.action is SyncAction.UNCHANGED:
            continue
        echo_fn(f"{prefix}{item.action.value:<10} {item.rel}")
    summary = ", ".join(f"{count} {action}" for action, count in plan.counts().items())
    echo_fn(f"{prefix}{plan.source}: {summary or 'nothing to do'}")
    if plan.has_conflicts:
        echo_fn("Locally modified files were left untouched; rerun with --force to overwrite them.")


@app.command("list")
def list_documents(
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    assistant_dir: Optional[str] = typer.Option(None, "--assistant-dir"),
    kind: Optional[str] = typer.Option(None, "--kind", help="rule|command|template|plan"),
) -> None:
    """List discovered documents."""
    selected = _parse_kind(kind)
    with _cli_errors():
        _, layout = _resolve(root, config, {"assistant_dir": assistant_dir})
        discovery = discover(layout, selected)
    for doc in discovery.documents:
        detail = ""
        if doc.kind is DocumentKind.COMMAND:
            detail = doc.command_name or ""
        elif doc.kind is DocumentKind.RULE:
            try:
                metadata = doc.rule_metadata()
            except ValidationError:
                detail = "(invalid front matter)"
            else:
                flags = ["always"] if metadata.always_apply else []
                if metadata.globs:
                    flags.append("globs=" + ",".join(metadata.globs))
                detail = " ".join(flags + [metadata.description or ""]).strip()
        typer.echo(f"{doc.kind.value:<8} {doc.rel}  {detail}".rstrip())
    for failure in discovery.failures:
        typer.echo(f"{failure.kind.value:<8} {failure.rel}  (unreadable: {failure.message})")


@app.command("lint")
def lint(
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    assistant_dir: Optional[str] = typer.Option(None, "--assistant-dir"),
    output_format: str = typer.Option("text", "--format", help="text|json|md"),
    output: Optional[Path] = typer.Option(None, "--output", help="Write the report here ('-' for stdout)."),
    strict: Optional[bool] = typer.Option(None, "--strict/--no-strict", help="Treat warnings as errors."),
    ignore: Optional[List[str]] = typer.Option(None, "--ignore", help="Finding kind to drop (repeatable)."),
    fail_on_violations: bool = typer.Option(True, "--fail-on-violations/--no-fail-on-violations"),
) -> None:
    """Run the documentation checks over the assistant directory."""
    renderer = RENDERERS.get(output_format)
    if renderer is None:
        raise typer.BadParameter(f"unknown format {output_format!r}; expected one of {', '.join(RENDERERS)}")
    for kind in ignore or []:
        if kind not in FINDING_KINDS:
            raise typer.BadParameter(f"unknown finding kind {kind!r}")
    overrides: TomlTable = {"assistant_dir": assistant_dir, "strict": strict}
    with _cli_errors():
        resolved, layout = _resolve(root, config, overrides)
        if ignore:
            resolved = replace(resolved, ignore=tuple(sorted({*resolved.ignore, *ignore})))
        report = lint_corpus(layout, resolved)
    rendered = renderer(report)
    if output is None or str(output) == STDOUT_ALIAS:
        typer.echo(rendered)
    else:
        write_text_to_target(output, rendered)
        typer.echo(f"Wrote lint report: {output}")
    if fail_on_violations and report.summary.errors:
        raise typer.Exit(code=1)


@app.command("placeholders")
def placeholders(
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    assistant_dir: Optional[str] = typer.Option(None, "--assistant-dir"),
    kind: Optional[str] = typer.Option(None, "--kind", help="Limit to one document kind."),
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """Show every placeholder token a setup pass has to replace."""
    selected = _parse_kind(kind)
    with _cli_errors():
        _, layout = _resolve(root, config, {"assistant_dir": assistant_dir})
        discovery = discover(layout, selected)
    entries = placeholder_inventory(discovery.documents)
    if as_json:
        payload = [
            InventoryEntryDTO(
                token=entry.token,
                style=entry.style,
                count=entry.count,
                documents=list(entry.documents),
            ).model_dump()
            for entry in entries
        ]
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return
    if not entries:
        typer.echo("No placeholders found.")
        return
    for entry in entries:
        marker = f"{{{{{entry.token}}}}}" if entry.style == "curly" else f"<!-- {entry.token} -->"
        typer.echo(f"{entry.count:>4}  {marker}  ({', '.join(entry.documents)})")


@app.command("init")
def init(
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    assistant_dir: Optional[str] = typer.Option(None, "--assistant-dir"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing files and manifest."),
    dry_run: bool = typer.Option(False, "--dry-run"),
) -> None:
    """Install the bundled documents into a project."""
    with _cli_errors():
        _, layout = _resolve(root, config, {"assistant_dir": assistant_dir})
        plan = install(bundled_source(), layout, force=force, dry_run=dry_run)
    _echo_plan(plan, dry_run=dry_run)
    if plan.has_conflicts:
        raise typer.Exit(code=1)


@app.command("sync")
def sync_command(
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    assistant_dir: Optional[str] = typer.Option(None, "--assistant-dir"),
    source: Optional[Path] = typer.Option(None, "--source", help="Directory laid out like an assistant dir."),
    force: bool = typer.Option(False, "--force", help="Overwrite locally modified files."),
    prune: bool = typer.Option(False, "--prune", help="Delete unmodified files that upstream dropped."),
    dry_run: bool = typer.Option(False, "--dry-run"),
) -> None:
    """Bring installed documents up to date with the bundled (or given) source."""
    with _cli_errors():
        _, layout = _resolve(root, config, {"assistant_dir": assistant_dir})
        asset_source = directory_source(source) if source is not None else bundled_source()
        plan = sync(asset_source, layout, force=force, prune=prune, dry_run=dry_run)
    _echo_plan(plan, dry_run=dry_run)
    if plan.has_conflicts:
        raise typer.Exit(code=1)


@app.command("fetch")
def fetch(
    ctx: typer.Context,
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    assistant_dir: Optional[str] = typer.Option(None, "--assistant-dir"),
    url: Optional[str] = typer.Option(None, "--url", help="Zip archive URL (defaults to source_url)."),
    subdir: Optional[str] = typer.Option(None, "--subdir", help="Archive folder holding the documents."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Seconds."),
    cache_dir: Optional[Path] = typer.Option(None, "--cache-dir"),
    apply: bool = typer.Option(False, "--apply/--no-apply", help="Sync the fetched documents."),
    force: bool = typer.Option(False, "--force"),
    prune: bool = typer.Option(False, "--prune"),
    dry_run: bool = typer.Option(False, "--dry-run"),
) -> None:
    """Download updated documents from a remote archive."""
    urlopen_fn = _context_urlopen(ctx)
    overrides: TomlTable = {
        "assistant_dir": assistant_dir,
        "source_url": url,
        "source_subdir": subdir,
        "timeout": timeout,
    }
    with _cli_errors():
        resolved, layout = _resolve(root, config, overrides)
        if resolved.source_url is None:
            raise typer.BadParameter("no archive URL; pass --url or set source_url in rulekit.toml")
        target_cache = cache_dir if cache_dir is not None else root / DEFAULT_CACHE_REL_PATH
        check_cache_dir(target_cache, (root, layout.base))
        asset_source = fetch_archive(
            resolved.source_url,
            target_cache,
            subdir=resolved.source_subdir,
            timeout=resolved.timeout,
            urlopen_fn=urlopen_fn,
        )
        typer.echo(f"Fetched {resolved.source_url} into {target_cache}")
        if not apply:
            return
        plan = sync(asset_source, layout, force=force, prune=prune, dry_run=dry_run)
    _echo_plan(plan, dry_run=dry_run)
    if plan.has_conflicts:
        raise typer.Exit(code=1)


@app.command("status")
def status(
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    assistant_dir: Optional[str] = typer.Option(None, "--assistant-dir"),
) -> None:
    """Compare installed documents with the manifest."""
    with _cli_errors():
        _, layout = _resolve(root, config, {"assistant_dir": assistant_dir})
        states = installation_status(layout)
    changed = {rel: state for rel, state in states.items() if state is not FileState.CLEAN}
    for rel, state in changed.items():
        typer.echo(f"{state.value:<9} {rel}")
    typer.echo(f"{len(states)} managed file(s), {len(changed)} changed")
