from __future__ import annotations

import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .registry import Category, Kind, Registry

PREFERRED_CONTENT_SUFFIX = ".md"


@dataclass(frozen=True)
class ResolvedEntry:
    key: str
    kind: Kind
    folder: str
    source_path: str
    dest_path: str | None = None


@dataclass(frozen=True)
class ResolvedIncludes:
    skills: tuple[ResolvedEntry, ...]
    agents: tuple[ResolvedEntry, ...]
    warnings: tuple[str, ...]

    @property
    def empty(self) -> bool:
        return not self.skills and not self.agents


def resolve_entry(key: str, category: Category, *, output_dir: str) -> ResolvedEntry:
    entry_key = key.split("/", 1)[1]
    folder = category.entries[entry_key]
    source_path = posixpath.join(category.base_path, folder)
    if category.kind == "agent":
        return ResolvedEntry(key=key, kind="agent", folder=folder, source_path=source_path)
    return ResolvedEntry(
        key=key,
        kind="skill",
        folder=folder,
        source_path=source_path,
        dest_path=posixpath.join(output_dir, folder),
    )


def resolve_includes(include: Iterable[str], registry: Registry, *, output_dir: str) -> ResolvedIncludes:
    """
    Split manifest entries into skill and agent entries, keeping manifest order.

    Entries the registry no longer knows are skipped with a warning, as are
    skill entries whose folder name an earlier skill entry already claimed.
    The source folders themselves are not checked here.
    """
    skills: list[ResolvedEntry] = []
    agents: list[ResolvedEntry] = []
    warnings: list[str] = []
    seen: set[str] = set()
    folders: dict[str, str] = {}

    for key in include:
        if key in seen:
            continue
        seen.add(key)
        cat_key, sep, entry_key = key.partition("/")
        category = registry.category(cat_key)
        if not sep or category is None or entry_key not in category.entries:
            warnings.append(f'Skipping "{key}": not found in registry')
            continue
        entry = resolve_entry(key, category, output_dir=output_dir)
        if entry.kind == "agent":
            agents.append(entry)
            continue
        owner = folders.get(entry.folder)
        if owner is not None:
            warnings.append(f'Skipping "{key}": folder "{entry.folder}" is already used by "{owner}"')
            continue
        folders[entry.folder] = key
        skills.append(entry)

    return ResolvedIncludes(skills=tuple(skills), agents=tuple(agents), warnings=tuple(warnings))


def find_content_file(folder: Path, stem: str) -> Path | None:
    if not folder.is_dir():
        return None
    candidates = [p for p in folder.iterdir() if p.is_file() and p.stem.lower() == stem]
    if not candidates:
        return None
    candidates.sort(key=lambda p: (p.suffix.lower() != PREFERRED_CONTENT_SUFFIX, p.name))
    return candidates[0]


def find_agent_file(folder: Path) -> Path | None:
    return find_content_file(folder, "agent")


def find_skill_file(folder: Path) -> Path | None:
    return find_content_file(folder, "skill")
