from __future__ import annotations

import filecmp
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from .paths import ResolvedEntry


class Status(str, Enum):
    NEW = "new"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    REMOVED = "removed"


@dataclass(frozen=True)
class ReconcileRecord:
    name: str
    status: Status
    key: str | None = None


@dataclass(frozen=True)
class ReconcileResult:
    records: tuple[ReconcileRecord, ...]
    warnings: tuple[str, ...]

    def by_status(self, status: Status) -> tuple[ReconcileRecord, ...]:
        return tuple(r for r in self.records if r.status is status)

    @property
    def change_count(self) -> int:
        return sum(1 for r in self.records if r.status is not Status.UNCHANGED)


def _tree_files(root: Path) -> dict[str, Path]:
    files: dict[str, Path] = {}
    for p in root.rglob("*"):
        if p.is_file():
            files[p.relative_to(root).as_posix()] = p
    return files


def _tree_dirs(root: Path) -> set[str]:
    return {p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_dir()}


def trees_differ(a: Path, b: Path) -> bool:
    """Compare two directory trees by structure and file bytes, never by mtime."""
    files_a = _tree_files(a)
    files_b = _tree_files(b)
    if files_a.keys() != files_b.keys():
        return True
    if _tree_dirs(a) != _tree_dirs(b):
        return True
    for rel, path_a in files_a.items():
        if not filecmp.cmp(path_a, files_b[rel], shallow=False):
            return True
    return False


def installed_folders(output_dir: Path) -> list[str]:
    if not output_dir.is_dir():
        return []
    return sorted(p.name for p in output_dir.iterdir() if p.is_dir())


def reconcile_skills(
    skills: Iterable[ResolvedEntry],
    *,
    source_root: Path,
    output_dir: Path,
    extra_desired: Iterable[str] = (),
) -> ReconcileResult:
    records: list[ReconcileRecord] = []
    warnings: list[str] = []
    entries = list(skills)
    desired = {entry.folder for entry in entries} | set(extra_desired)
    recorded: set[str] = set()

    for entry in entries:
        # One record per output folder; the first entry claiming it wins.
        if entry.folder in recorded:
            warnings.append(f'Skipping "{entry.key}": folder "{entry.folder}" is already used')
            continue
        recorded.add(entry.folder)
        src = source_root / entry.source_path
        dest = output_dir / entry.folder
        if not src.is_dir():
            if dest.is_dir():
                warnings.append(
                    f'"{entry.key}": source folder not found: {entry.source_path}; '
                    "the installed copy will be removed"
                )
                records.append(ReconcileRecord(name=entry.folder, status=Status.REMOVED, key=entry.key))
            else:
                warnings.append(f'Skipping "{entry.key}": source folder not found: {entry.source_path}')
            continue
        if not dest.is_dir():
            status = Status.NEW
        elif trees_differ(src, dest):
            status = Status.MODIFIED
        else:
            status = Status.UNCHANGED
        records.append(ReconcileRecord(name=entry.folder, status=status, key=entry.key))

    for name in installed_folders(output_dir):
        if name not in desired:
            records.append(ReconcileRecord(name=name, status=Status.REMOVED))

    return ReconcileResult(records=tuple(records), warnings=tuple(warnings))


def reconcile_document(composed: str | None, path: Path, *, name: str) -> ReconcileRecord | None:
    if composed is None:
        return None
    if not path.is_file():
        return ReconcileRecord(name=name, status=Status.NEW)
    if path.read_bytes() != composed.encode("utf-8"):
        return ReconcileRecord(name=name, status=Status.MODIFIED)
    return ReconcileRecord(name=name, status=Status.UNCHANGED)
