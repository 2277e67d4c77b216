from __future__ import annotations

import posixpath
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .errors import ClipboardError, InvalidKeyExpressionError, PromptNotFoundError, UnknownCategoryError
from .keys import normalize_category
from .registry import Category, Registry

PROMPTS_DIRNAME = "prompts"


@dataclass(frozen=True)
class PromptRef:
    category: str
    key: str
    filename: str
    source_path: str

    @property
    def full_key(self) -> str:
        return f"{self.category}/{self.key}"


def category_prompts(category: Category) -> list[PromptRef]:
    base = category.resolved_prompts_path
    return [
        PromptRef(category=category.key, key=key, filename=filename, source_path=posixpath.join(base, filename))
        for key, filename in category.prompts.items()
    ]


def list_prompts(registry: Registry, *, categories: Iterable[str] | None = None) -> list[PromptRef]:
    wanted = set(categories) if categories is not None else None
    out: list[PromptRef] = []
    for cat_key, category in registry.categories.items():
        if wanted is not None and cat_key not in wanted:
            continue
        out.extend(category_prompts(category))
    return out


def resolve_prompt(key: str, registry: Registry) -> PromptRef:
    raw_category, sep, prompt_key = key.strip().partition("/")
    if not sep or not raw_category or not prompt_key:
        raise InvalidKeyExpressionError(f'Invalid prompt key: "{key}". Use "category/prompt" format.')

    category = registry.category(normalize_category(raw_category))
    if category is None:
        raise UnknownCategoryError(f'Unknown category: "{raw_category}"')
    if prompt_key not in category.prompts:
        if category.prompts:
            available = ", ".join(category.prompts)
            raise PromptNotFoundError(
                f'Unknown prompt: "{prompt_key}" in category "{category.key}". Available: {available}'
            )
        raise PromptNotFoundError(f'Unknown prompt: "{prompt_key}". No prompts defined for category "{category.key}"')

    for ref in category_prompts(category):
        if ref.key == prompt_key:
            return ref
    raise AssertionError("unreachable")


def read_prompt(ref: PromptRef, *, source_root: Path) -> str:
    path = source_root / ref.source_path
    if not path.is_file():
        raise PromptNotFoundError(f"Prompt file not found: {ref.source_path}")
    return path.read_text(encoding="utf-8", errors="replace")


def _clipboard_commands() -> list[list[str]]:
    if sys.platform == "darwin":
        return [["pbcopy"]]
    if sys.platform == "win32":
        return [["clip"]]
    return [["xclip", "-selection", "clipboard"], ["xsel", "--clipboard", "--input"], ["wl-copy"]]


def copy_to_clipboard(text: str) -> str:
    """Copy text with the first available platform clipboard tool. Returns the tool name."""
    errors: list[str] = []
    for cmd in _clipboard_commands():
        if shutil.which(cmd[0]) is None:
            errors.append(f"{cmd[0]}: not installed")
            continue
        proc = subprocess.run(cmd, input=text, text=True, capture_output=True)
        if proc.returncode == 0:
            return cmd[0]
        errors.append(f"{cmd[0]}: {proc.stderr.strip() or f'exit {proc.returncode}'}")
    raise ClipboardError("Could not copy to clipboard (" + "; ".join(errors) + ").")
