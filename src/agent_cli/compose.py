from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .paths import ResolvedEntry, find_agent_file

LOCAL_INSTRUCTIONS_FILENAME = "local-instructions.md"
BLOCK_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class Composition:
    document: str | None
    sources: tuple[str, ...]
    warnings: tuple[str, ...]
    used_local_overrides: bool = False

    @property
    def block_count(self) -> int:
        return len(self.sources) + (1 if self.used_local_overrides else 0)


def compose_blocks(blocks: Iterable[str]) -> str | None:
    """Join non-empty blocks with a blank line. Returns None when nothing is left."""
    kept = [b.strip() for b in blocks]
    kept = [b for b in kept if b]
    if not kept:
        return None
    return BLOCK_SEPARATOR.join(kept)


def read_local_overrides(project_root: Path) -> str | None:
    path = project_root / LOCAL_INSTRUCTIONS_FILENAME
    if not path.is_file():
        return None
    content = path.read_text(encoding="utf-8", errors="replace").strip()
    return content or None


def compose_agent_document(
    agents: Iterable[ResolvedEntry],
    *,
    source_root: Path,
    project_root: Path,
) -> Composition:
    blocks: list[str] = []
    sources: list[str] = []
    warnings: list[str] = []

    for entry in agents:
        agent_file = find_agent_file(source_root / entry.source_path)
        if agent_file is None:
            warnings.append(f'Skipping "{entry.key}": no agent file found in {entry.source_path}')
            continue
        try:
            # Undecodable bytes become U+FFFD rather than failing the whole document.
            content = agent_file.read_text(encoding="utf-8", errors="replace").strip()
        except OSError as e:
            warnings.append(f'Skipping "{entry.key}": could not read {agent_file.name}: {e}')
            continue
        if not content:
            warnings.append(f'Skipping "{entry.key}": {agent_file.name} is empty')
            continue
        blocks.append(content)
        sources.append(entry.key)

    overrides = read_local_overrides(project_root)
    if overrides is not None:
        blocks.append(overrides)

    return Composition(
        document=compose_blocks(blocks),
        sources=tuple(sources),
        warnings=tuple(warnings),
        used_local_overrides=overrides is not None,
    )
