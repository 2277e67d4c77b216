from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .errors import ManifestAlreadyExistsError, ManifestFormatError, ManifestMissingError

MANIFEST_FILENAME = ".agent.json"
DEFAULT_OUTPUT_DIR = ".agent"
DEFAULT_AGENT_OUTPUT = "agent.md"


@dataclass(frozen=True)
class Manifest:
    source: str
    ref: str
    output_dir: str = DEFAULT_OUTPUT_DIR
    include: tuple[str, ...] = field(default_factory=tuple)
    agent_output: str = DEFAULT_AGENT_OUTPUT

    def with_include(self, include: tuple[str, ...] | list[str]) -> Manifest:
        return replace(self, include=tuple(include))

    def with_ref(self, ref: str) -> Manifest:
        return replace(self, ref=ref)

    def included_categories(self) -> set[str]:
        return {entry.split("/", 1)[0] for entry in self.include}

    def to_json(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "ref": self.ref,
            "outputDir": self.output_dir,
            "include": list(self.include),
            "agentOutput": self.agent_output,
        }


def manifest_path(project_root: Path) -> Path:
    return project_root / MANIFEST_FILENAME


def manifest_exists(project_root: Path) -> bool:
    return manifest_path(project_root).exists()


def _str_field(raw: dict[str, Any], key: str, *, default: str | None = None) -> str:
    value = raw.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ManifestFormatError(f"{MANIFEST_FILENAME}: field {key!r} must be a non-empty string.")
    return value


def parse_manifest(raw: Any) -> Manifest:
    if not isinstance(raw, dict):
        raise ManifestFormatError(f"{MANIFEST_FILENAME} must contain a JSON object.")

    include_raw = raw.get("include", [])
    if not isinstance(include_raw, list) or not all(isinstance(x, str) for x in include_raw):
        raise ManifestFormatError(f"{MANIFEST_FILENAME}: field 'include' must be a list of strings.")

    # Keep first occurrence only; order is the composition order.
    include = tuple(dict.fromkeys(x.strip() for x in include_raw if x.strip()))
    return Manifest(
        source=_str_field(raw, "source"),
        ref=_str_field(raw, "ref"),
        output_dir=_str_field(raw, "outputDir", default=DEFAULT_OUTPUT_DIR),
        include=include,
        agent_output=_str_field(raw, "agentOutput", default=DEFAULT_AGENT_OUTPUT),
    )


def load_manifest(project_root: Path) -> Manifest:
    path = manifest_path(project_root)
    if not path.exists():
        raise ManifestMissingError(f"No {MANIFEST_FILENAME} found in {project_root}. Run `agent init` first.")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestFormatError(f"Could not parse {path}: {e}") from e
    return parse_manifest(raw)


def _write_json_atomic(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)


def save_manifest(project_root: Path, manifest: Manifest) -> Path:
    path = manifest_path(project_root)
    _write_json_atomic(path, manifest.to_json())
    return path


def create_manifest(project_root: Path, manifest: Manifest) -> Path:
    if manifest_exists(project_root):
        raise ManifestAlreadyExistsError(f"{MANIFEST_FILENAME} already exists. Delete it first or edit manually.")
    return save_manifest(project_root, manifest)
