from __future__ import annotations

import json
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from .errors import RegistryFormatError, RegistryMissingError

REGISTRY_FILENAME = "registry.json"

Kind = Literal["skill", "agent"]
KINDS: tuple[str, ...] = ("skill", "agent")


@dataclass(frozen=True)
class Category:
    key: str
    name: str
    description: str
    kind: Kind
    base_path: str
    entries: dict[str, str]
    prompts: dict[str, str] = field(default_factory=dict)
    prompts_path: str | None = None

    @property
    def resolved_prompts_path(self) -> str:
        # Prompts live next to the entry folders unless the registry says otherwise.
        if self.prompts_path:
            return self.prompts_path
        return posixpath.join(posixpath.dirname(self.base_path.rstrip("/")), "prompts")


@dataclass(frozen=True)
class Registry:
    version: str
    categories: dict[str, Category]
    presets: dict[str, tuple[str, ...]]

    def category(self, key: str) -> Category | None:
        return self.categories.get(key)


def _require_str(value: Any, *, where: str, default: str | None = None) -> str:
    if value is None and default is not None:
        return default
    if not isinstance(value, str):
        raise RegistryFormatError(f"{where} must be a string.")
    return value


def _parse_str_map(value: Any, *, where: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise RegistryFormatError(f"{where} must be an object mapping keys to names.")
    out: dict[str, str] = {}
    for k, v in value.items():
        if not isinstance(v, str) or not v.strip():
            raise RegistryFormatError(f"{where}.{k} must be a non-empty string.")
        out[str(k)] = v
    return out


def _parse_category(key: str, raw: Any) -> Category:
    where = f"categories.{key}"
    if not isinstance(raw, dict):
        raise RegistryFormatError(f"{where} must be an object.")

    kind = raw.get("type", "skill")
    if kind not in KINDS:
        raise RegistryFormatError(f"{where}.type must be one of {', '.join(KINDS)} (got {kind!r}).")

    base_path = _require_str(raw.get("path"), where=f"{where}.path")
    prompts_path = raw.get("promptsPath")
    if prompts_path is not None and not isinstance(prompts_path, str):
        raise RegistryFormatError(f"{where}.promptsPath must be a string.")

    return Category(
        key=key,
        name=_require_str(raw.get("name"), where=f"{where}.name", default=key),
        description=_require_str(raw.get("description"), where=f"{where}.description", default=""),
        kind=kind,
        base_path=base_path,
        entries=_parse_str_map(raw.get("skills"), where=f"{where}.skills"),
        prompts=_parse_str_map(raw.get("prompts"), where=f"{where}.prompts"),
        prompts_path=prompts_path or None,
    )


def parse_registry(raw: Any) -> Registry:
    """
    Validate a decoded registry.json document.

    Malformed documents are rejected here, before any key resolution happens.
    """
    if not isinstance(raw, dict):
        raise RegistryFormatError("Registry document must be a JSON object.")

    cats_raw = raw.get("categories")
    if not isinstance(cats_raw, dict):
        raise RegistryFormatError("Registry is missing a 'categories' object.")
    categories = {str(k): _parse_category(str(k), v) for k, v in cats_raw.items()}

    presets_raw = raw.get("presets")
    presets: dict[str, tuple[str, ...]] = {}
    if presets_raw is not None:
        if not isinstance(presets_raw, dict):
            raise RegistryFormatError("Registry 'presets' must be an object.")
        for name, patterns in presets_raw.items():
            if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
                raise RegistryFormatError(f"presets.{name} must be a list of key expressions.")
            presets[str(name)] = tuple(patterns)

    version = raw.get("version", "")
    return Registry(version=str(version), categories=categories, presets=presets)


def load_registry(root: Path) -> Registry:
    path = root / REGISTRY_FILENAME
    if not path.is_file():
        raise RegistryMissingError(
            f'{REGISTRY_FILENAME} not found in "{root}". '
            f"Ensure the source repository contains a {REGISTRY_FILENAME} at its root."
        )
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise RegistryFormatError(f"Could not parse {path}: {e}") from e
    return parse_registry(raw)
