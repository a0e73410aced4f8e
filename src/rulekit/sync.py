"""Copy corpus files into a project and keep them in step with upstream.

Every file written is recorded in a manifest with the hash of the bytes
written. On the next sync that hash tells a file the user edited apart from
one that is merely out of date: edited files are never overwritten unless
forced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable
import hashlib
import json
import logging

from pydantic import ValidationError

from rulekit.bundle import AssetSource
from rulekit.errors import SyncError
from rulekit.layout import AssetLayout
from rulekit.schema import ManifestDTO, ManifestEntryDTO

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    ADD = "add"
    UPDATE = "update"
    UNCHANGED = "unchanged"
    CONFLICT = "conflict"
    OVERWRITE = "overwrite"
    KEEP_LOCAL = "keep-local"
    ORPHAN = "orphan"
    REMOVE = "remove"
    FORGET = "forget"

    @property
    def writes(self) -> bool:
        return self in (SyncAction.ADD, SyncAction.UPDATE, SyncAction.OVERWRITE)


@dataclass(frozen=True)
class SyncItem:
    rel: str
    action: SyncAction
    upstream_hash: str | None = None
    recorded_hash: str | None = None
    data: bytes | None = field(default=None, repr=False)


@dataclass
class SyncPlan:
    source: str
    items: list[SyncItem] = field(default_factory=list)

    def by_action(self, action: SyncAction) -> list[SyncItem]:
        return [item for item in self.items if item.action is action]

    def counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for item in self.items:
            counts[item.action.value] = counts.get(item.action.value, 0) + 1
        return dict(sorted(counts.items()))

    @property
    def has_conflicts(self) -> bool:
        return any(item.action is SyncAction.CONFLICT for item in self.items)


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _file_hash(path: Path) -> str | None:
    if not path.is_file():
        return None
    return sha256_bytes(path.read_bytes())


def _safe_target(base: Path, rel: str) -> Path:
    posix = PurePosixPath(rel)
    if posix.is_absolute() or ".." in posix.parts or not posix.parts:
        raise SyncError(f"refusing to write outside the assistant dir: {rel}")
    return base.joinpath(*posix.parts)


def load_manifest(layout: AssetLayout) -> ManifestDTO | None:
    path = layout.manifest_path
    if not path.is_file():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return ManifestDTO.model_validate(payload)
    except (OSError, UnicodeError, json.JSONDecodeError, ValidationError) as exc:
        raise SyncError(f"unreadable manifest {path}: {exc}") from exc


def write_manifest(layout: AssetLayout, manifest: ManifestDTO) -> None:
    path = layout.manifest_path
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(manifest.model_dump(), indent=2, sort_keys=True)
    path.write_text(payload + "\n", encoding="utf-8")


def plan_sync(
    source: AssetSource,
    layout: AssetLayout,
    manifest: ManifestDTO | None,
    *,
    force: bool = False,
    prune: bool = False,
) -> SyncPlan:
    base = layout.base
    recorded = manifest.files if manifest is not None else {}
    plan = SyncPlan(source=source.description)
    upstream_rels: set[str] = set()

    for rel, data in source.iter_files():
        upstream_rels.add(rel)
        upstream_hash = sha256_bytes(data)
        entry = recorded.get(rel)
        recorded_hash = entry.sha256 if entry is not None else None
        current_hash = _file_hash(_safe_target(base, rel))
        if current_hash is None:
            action = SyncAction.ADD
        elif current_hash == upstream_hash:
            action = SyncAction.UNCHANGED
        elif recorded_hash is not None and current_hash == recorded_hash:
            action = SyncAction.UPDATE
        elif recorded_hash is not None and upstream_hash == recorded_hash:
            action = SyncAction.KEEP_LOCAL
        else:
            action = SyncAction.OVERWRITE if force else SyncAction.CONFLICT
        logger.debug("%s: %s", rel, action.value)
        plan.items.append(
            SyncItem(
                rel=rel,
                action=action,
                upstream_hash=upstream_hash,
                recorded_hash=recorded_hash,
                data=data,
            )
        )

    for rel in sorted(set(recorded) - upstream_rels):
        recorded_hash = recorded[rel].sha256
        current_hash = _file_hash(_safe_target(base, rel))
        if current_hash is None:
            action = SyncAction.FORGET
        elif current_hash == recorded_hash and prune:
            action = SyncAction.REMOVE
        else:
            action = SyncAction.ORPHAN
        logger.debug("%s: %s", rel, action.value)
        plan.items.append(SyncItem(rel=rel, action=action, recorded_hash=recorded_hash))

    plan.items.sort(key=lambda item: item.rel)
    return plan


def apply_sync(
    plan: SyncPlan,
    layout: AssetLayout,
    manifest: ManifestDTO | None,
    *,
    dry_run: bool = False,
    now: Callable[[], datetime] | None = None,
) -> ManifestDTO:
    """Carry out ``plan`` and return the manifest describing the result.

    With ``dry_run`` nothing is written and the would-be manifest is
    returned.
    """
    base = layout.base
    previous = dict(manifest.files) if manifest is not None else {}
    files: dict[str, ManifestEntryDTO] = {}
    for item in plan.items:
        target = _safe_target(base, item.rel)
        data = item.data if item.data is not None else b""
        if item.action.writes:
            if not dry_run:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
                logger.info("wrote %s", target)
            files[item.rel] = ManifestEntryDTO(sha256=item.upstream_hash or "", size=len(data))
        elif item.action is SyncAction.UNCHANGED:
            files[item.rel] = ManifestEntryDTO(sha256=item.upstream_hash or "", size=len(data))
        elif item.action is SyncAction.REMOVE:
            if not dry_run:
                target.unlink()
                logger.info("removed %s", target)
        elif item.action in (SyncAction.KEEP_LOCAL, SyncAction.ORPHAN, SyncAction.CONFLICT):
            if item.rel in previous:
                files[item.rel] = previous[item.rel]
    stamp = (now or (lambda: datetime.now(timezone.utc)))()
    updated = ManifestDTO(
        source=plan.source,
        installed_at=stamp.isoformat(),
        files=dict(sorted(files.items())),
    )
    if not dry_run:
        write_manifest(layout, updated)
    return updated


def sync(
    source: AssetSource,
    layout: AssetLayout,
    *,
    force: bool = False,
    prune: bool = False,
    dry_run: bool = False,
) -> SyncPlan:
    manifest = load_manifest(layout)
    plan = plan_sync(source, layout, manifest, force=force, prune=prune)
    apply_sync(plan, layout, manifest, dry_run=dry_run)
    return plan


def install(
    source: AssetSource,
    layout: AssetLayout,
    *,
    force: bool = False,
    dry_run: bool = False,
) -> SyncPlan:
    """First-time copy of ``source`` into the project.

    Refuses to run over an existing installation unless ``force``; use
    :func:`sync` for updates.
    """
    if layout.manifest_path.exists() and not force:
        raise SyncError(
            f"{layout.assistant_dir} is already managed by rulekit; run `rulekit sync` instead"
        )
    manifest = load_manifest(layout) if force else None
    plan = plan_sync(source, layout, manifest, force=force)
    apply_sync(plan, layout, manifest, dry_run=dry_run)
    return plan


class FileState(str, Enum):
    CLEAN = "clean"
    MODIFIED = "modified"
    MISSING = "missing"


def installation_status(layout: AssetLayout) -> dict[str, FileState]:
    manifest = load_manifest(layout)
    if manifest is None:
        raise SyncError(f"no rulekit manifest in {layout.base}; run `rulekit init` first")
    states: dict[str, FileState] = {}
    for rel, entry in sorted(manifest.files.items()):
        current = _file_hash(_safe_target(layout.base, rel))
        if current is None:
            states[rel] = FileState.MISSING
        elif current == entry.sha256:
            states[rel] = FileState.CLEAN
        else:
            states[rel] = FileState.MODIFIED
    return states
