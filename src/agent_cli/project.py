from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .compose import Composition, compose_agent_document
from .errors import AgentCliError, NothingToInstallError
from .manifest import Manifest
from .paths import ResolvedEntry, ResolvedIncludes, find_skill_file, resolve_includes
from .prompts import PROMPTS_DIRNAME, PromptRef, list_prompts
from .reconcile import ReconcileRecord, ReconcileResult, Status, installed_folders, reconcile_document, reconcile_skills
from .registry import Registry

SKILLS_INDEX_FILENAME = "README.md"
GITIGNORE_HEADER = "# agent-cli generated files"

AGENT_OUTPUT_FORMATS: dict[str, str] = {
    "copilot": ".github/copilot-instructions.md",
    "cursor": ".cursorrules",
    "claude": "CLAUDE.md",
}


def resolve_agent_output_path(fmt: str | None, default: str) -> str:
    if not fmt:
        return default
    try:
        return AGENT_OUTPUT_FORMATS[fmt]
    except KeyError:
        raise AgentCliError(
            f'Unknown format: "{fmt}". Available: {", ".join(AGENT_OUTPUT_FORMATS)}'
        ) from None


def _normalize_ignore_entry(value: str) -> str:
    v = value.strip()
    while v.startswith("./"):
        v = v[2:]
    return v.strip("/")


def find_missing_gitignore_entries(paths: Iterable[str], gitignore_content: str | None) -> list[str]:
    existing: set[str] = set()
    for line in (gitignore_content or "").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        existing.add(_normalize_ignore_entry(line))
    missing: list[str] = []
    for p in paths:
        norm = _normalize_ignore_entry(p)
        if norm and norm not in existing and p not in missing:
            missing.append(p)
    return missing


def skills_index_content(skills: Iterable[ResolvedEntry], *, output_dir: Path) -> str:
    lines = [
        "# Agent Skills",
        "",
        "Installed by agent-cli. Do not edit by hand; run `agent install` to regenerate.",
        "",
        "| Skill | Folder |",
        "|-------|--------|",
    ]
    for entry in skills:
        content_file = find_skill_file(output_dir / entry.folder)
        target = f"{entry.folder}/{content_file.name}" if content_file else f"{entry.folder}/"
        lines.append(f"| `{entry.key}` | [{entry.folder}]({target}) |")
    return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class InstallResult:
    installed: tuple[str, ...]
    composed: tuple[str, ...]
    prompts: tuple[str, ...]
    removed: tuple[str, ...]
    output_dir: Path
    agent_output: Path | None
    used_local_overrides: bool
    gitignore_added: tuple[str, ...]
    warnings: tuple[str, ...]


@dataclass(frozen=True)
class DiffResult:
    skills: ReconcileResult
    agent: ReconcileRecord | None
    warnings: tuple[str, ...]

    @property
    def records(self) -> tuple[ReconcileRecord, ...]:
        if self.agent is None:
            return self.skills.records
        return self.skills.records + (self.agent,)

    @property
    def change_count(self) -> int:
        return sum(1 for r in self.records if r.status is not Status.UNCHANGED)


class ProjectWorkspace:
    """
    Applies or previews a manifest against one materialized content tree.

    ``root`` is the project directory holding the manifest; ``source_root`` is
    the content tree returned by the source provider.
    """

    def __init__(
        self,
        *,
        root: Path,
        manifest: Manifest,
        registry: Registry,
        source_root: Path,
        agent_output: str | None = None,
    ) -> None:
        self.root = root.expanduser().resolve()
        self.manifest = manifest
        self.registry = registry
        self.source_root = source_root
        self.agent_output = agent_output or manifest.agent_output
        self.output_dir = (self.root / manifest.output_dir).resolve()

    @property
    def agent_output_path(self) -> Path:
        return self.root / self.agent_output

    def resolve(self) -> ResolvedIncludes:
        return resolve_includes(self.manifest.include, self.registry, output_dir=self.manifest.output_dir)

    def _compose(self, agents: tuple[ResolvedEntry, ...]) -> Composition | None:
        if not agents:
            return None
        return compose_agent_document(agents, source_root=self.source_root, project_root=self.root)

    def _included_prompts(self) -> list[PromptRef]:
        return list_prompts(self.registry, categories=self.manifest.included_categories())

    def diff(self) -> DiffResult:
        resolved = self.resolve()
        extra = (PROMPTS_DIRNAME,) if self._included_prompts() else ()
        skills = reconcile_skills(
            resolved.skills,
            source_root=self.source_root,
            output_dir=self.output_dir,
            extra_desired=extra,
        )
        composition = self._compose(resolved.agents)
        agent_record = None
        warnings = list(resolved.warnings) + list(skills.warnings)
        if composition is not None:
            warnings.extend(composition.warnings)
            agent_record = reconcile_document(composition.document, self.agent_output_path, name=self.agent_output)
        return DiffResult(skills=skills, agent=agent_record, warnings=tuple(warnings))

    def _check_output_dir(self) -> None:
        if self.output_dir == self.root or self.output_dir in self.root.parents:
            raise AgentCliError(f"Refusing to clear output directory {self.output_dir}: it contains the project.")
        if self.output_dir.exists() and not self.output_dir.is_dir():
            raise AgentCliError(f"Output path is not a directory: {self.output_dir}")

    def install(self, *, update_gitignore: bool = True) -> InstallResult:
        resolved = self.resolve()
        warnings: list[str] = list(resolved.warnings)

        available: list[ResolvedEntry] = []
        for entry in resolved.skills:
            if (self.source_root / entry.source_path).is_dir():
                available.append(entry)
            else:
                warnings.append(f'Skipping "{entry.key}": source folder not found: {entry.source_path}')

        composition = self._compose(resolved.agents)
        if composition is not None:
            warnings.extend(composition.warnings)

        if self.manifest.include and not available and not (composition and composition.sources):
            raise NothingToInstallError(
                "No valid entries found to install. " + " ".join(warnings)
            )

        self._check_output_dir()
        desired = {entry.folder for entry in available}
        if self._included_prompts():
            desired.add(PROMPTS_DIRNAME)
        removed = tuple(name for name in installed_folders(self.output_dir) if name not in desired)

        # Every install is a clean rebuild of the output directory.
        if self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        installed: list[str] = []
        for entry in available:
            dest = self.output_dir / entry.folder
            shutil.copytree(self.source_root / entry.source_path, dest, dirs_exist_ok=True)
            if find_skill_file(dest) is None:
                warnings.append(f'"{entry.key}" has no skill file in {entry.source_path}')
            installed.append(entry.key)
        if available:
            (self.output_dir / SKILLS_INDEX_FILENAME).write_text(
                skills_index_content(available, output_dir=self.output_dir), encoding="utf-8"
            )

        agent_output: Path | None = None
        if composition is not None and composition.document is not None:
            agent_output = self.agent_output_path
            agent_output.parent.mkdir(parents=True, exist_ok=True)
            agent_output.write_bytes(composition.document.encode("utf-8"))

        prompts = self._install_prompts(warnings)

        gitignore_added: tuple[str, ...] = ()
        if update_gitignore:
            generated = [self.manifest.output_dir]
            if agent_output is not None:
                generated.append(self.agent_output)
            gitignore_added = self._update_gitignore(generated)

        return InstallResult(
            installed=tuple(installed),
            composed=composition.sources if composition is not None else (),
            prompts=prompts,
            removed=removed,
            output_dir=self.output_dir,
            agent_output=agent_output,
            used_local_overrides=bool(composition and composition.used_local_overrides and agent_output),
            gitignore_added=gitignore_added,
            warnings=tuple(warnings),
        )

    def _install_prompts(self, warnings: list[str]) -> tuple[str, ...]:
        installed: list[str] = []
        prompts_dir = self.output_dir / PROMPTS_DIRNAME
        for ref in self._included_prompts():
            src = self.source_root / ref.source_path
            if not src.is_file():
                warnings.append(f"Prompt file not found: {ref.source_path}")
                continue
            dest = prompts_dir / ref.category / ref.filename
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dest)
            installed.append(ref.full_key)
        return tuple(installed)

    def _update_gitignore(self, generated: list[str]) -> tuple[str, ...]:
        # Only guard projects that are git repositories.
        if not (self.root / ".git").exists():
            return ()
        path = self.root / ".gitignore"
        content = path.read_text(encoding="utf-8", errors="surrogateescape") if path.exists() else None
        missing = find_missing_gitignore_entries(generated, content)
        if not missing:
            return ()
        existing = content or ""
        if existing and not existing.endswith("\n"):
            existing += "\n"
        block = "\n" + GITIGNORE_HEADER + "\n" + "\n".join(missing) + "\n"
        path.write_text(existing + block, encoding="utf-8", errors="surrogateescape")
        return tuple(missing)
