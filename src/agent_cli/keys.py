from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union

from .errors import (
    AgentCliError,
    InvalidKeyExpressionError,
    UnknownCategoryError,
    UnknownEntryError,
    UnknownPresetError,
)
from .registry import Registry

# Short names accepted anywhere a category key is expected. Applied once per token.
CATEGORY_ALIASES: dict[str, str] = {
    "aws": "aws-cloud",
    "azure": "azure-cloud",
}

WILDCARD = "*"


def normalize_category(key: str) -> str:
    return CATEGORY_ALIASES.get(key, key)


@dataclass(frozen=True)
class PresetExpr:
    name: str


@dataclass(frozen=True)
class WildcardExpr:
    category: str
    raw_category: str


@dataclass(frozen=True)
class ExactExpr:
    category: str
    key: str
    raw_category: str

    @property
    def canonical(self) -> str:
        return f"{self.category}/{self.key}"


KeyExpression = Union[PresetExpr, WildcardExpr, ExactExpr]


@dataclass(frozen=True)
class Rejection:
    token: str
    error: AgentCliError

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass(frozen=True)
class KeyExpansion:
    keys: tuple[str, ...]
    rejected: tuple[Rejection, ...]


@dataclass(frozen=True)
class AddResult:
    include: tuple[str, ...]
    added: tuple[str, ...]
    skipped: tuple[str, ...]
    rejected: tuple[Rejection, ...]

    @property
    def changed(self) -> bool:
        return bool(self.added)


@dataclass(frozen=True)
class RemoveResult:
    include: tuple[str, ...]
    removed: tuple[str, ...]
    missing: tuple[str, ...]

    @property
    def changed(self) -> bool:
        return bool(self.removed)


def _invalid(raw: str) -> InvalidKeyExpressionError:
    return InvalidKeyExpressionError(
        f'Invalid format: "{raw}". Use "category/key" (e.g. development/git, agents/nextjs) '
        "or a category name (e.g. serverless)."
    )


def parse_key_expression(raw: str, registry: Registry, *, allow_presets: bool = True) -> KeyExpression:
    token = raw.strip()
    if not token:
        raise _invalid(raw)

    if "/" not in token:
        if allow_presets and token in registry.presets:
            return PresetExpr(name=token)
        return WildcardExpr(category=normalize_category(token), raw_category=token)

    raw_category, _, key = token.partition("/")
    raw_category = raw_category.strip()
    key = key.strip()
    if not raw_category or not key or "/" in key:
        raise _invalid(raw)
    category = normalize_category(raw_category)
    if key == WILDCARD:
        return WildcardExpr(category=category, raw_category=raw_category)
    return ExactExpr(category=category, key=key, raw_category=raw_category)


def _unknown_category(raw_category: str, registry: Registry) -> UnknownCategoryError:
    available = ", ".join(registry.categories)
    return UnknownCategoryError(f'Unknown category: "{raw_category}". Available: {available}')


def _resolve_wildcard(expr: WildcardExpr, registry: Registry) -> tuple[str, ...]:
    cat = registry.category(expr.category)
    if cat is None:
        raise _unknown_category(expr.raw_category, registry)
    return tuple(f"{cat.key}/{key}" for key in cat.entries)


def _resolve_exact(expr: ExactExpr, registry: Registry) -> tuple[str, ...]:
    cat = registry.category(expr.category)
    if cat is None:
        raise _unknown_category(expr.raw_category, registry)
    if expr.key not in cat.entries:
        raise UnknownEntryError(category=cat.key, key=expr.key, available=tuple(cat.entries))
    return (expr.canonical,)


def _expand_preset(name: str, registry: Registry) -> KeyExpansion:
    patterns = registry.presets.get(name)
    if patterns is None:
        available = ", ".join(registry.presets) or "<none>"
        raise UnknownPresetError(f'Unknown preset: "{name}". Available: {available}')
    # Presets are flat: their items never expand into other presets.
    return expand_keys(patterns, registry, allow_presets=False)


def resolve_key(raw: str, registry: Registry) -> tuple[str, ...]:
    """
    Resolve one key expression to canonical ``category/key`` strings.

    Raises on the first failure, including failures of individual preset items.
    Use ``expand_keys`` where partial success is wanted.
    """
    expr = parse_key_expression(raw, registry)
    if isinstance(expr, PresetExpr):
        expansion = _expand_preset(expr.name, registry)
        if expansion.rejected:
            raise expansion.rejected[0].error
        return expansion.keys
    if isinstance(expr, WildcardExpr):
        return _resolve_wildcard(expr, registry)
    return _resolve_exact(expr, registry)


def expand_keys(tokens: Iterable[str], registry: Registry, *, allow_presets: bool = True) -> KeyExpansion:
    keys: list[str] = []
    rejected: list[Rejection] = []
    for token in tokens:
        try:
            expr = parse_key_expression(token, registry, allow_presets=allow_presets)
            if isinstance(expr, PresetExpr):
                nested = _expand_preset(expr.name, registry)
                keys.extend(nested.keys)
                rejected.extend(nested.rejected)
                continue
            if isinstance(expr, WildcardExpr):
                keys.extend(_resolve_wildcard(expr, registry))
            else:
                keys.extend(_resolve_exact(expr, registry))
        except AgentCliError as e:
            rejected.append(Rejection(token=token, error=e))
    return KeyExpansion(keys=tuple(dict.fromkeys(keys)), rejected=tuple(rejected))


def _merge(include: Iterable[str], expansion: KeyExpansion) -> AddResult:
    current = list(include)
    seen = set(current)
    added: list[str] = []
    skipped: list[str] = []
    for key in expansion.keys:
        if key in seen:
            skipped.append(key)
            continue
        seen.add(key)
        current.append(key)
        added.append(key)
    return AddResult(
        include=tuple(current),
        added=tuple(added),
        skipped=tuple(skipped),
        rejected=expansion.rejected,
    )


def add_keys(include: Iterable[str], tokens: Iterable[str], registry: Registry) -> AddResult:
    return _merge(include, expand_keys(tokens, registry))


def apply_preset(include: Iterable[str], name: str, registry: Registry) -> AddResult:
    return _merge(include, _expand_preset(name, registry))


def remove_keys(include: Iterable[str], tokens: Iterable[str]) -> RemoveResult:
    current = list(include)
    removed: list[str] = []
    missing: list[str] = []
    for token in tokens:
        raw = token.strip()
        category, sep, key = raw.partition("/")
        category = normalize_category(category)
        if not sep or key == WILDCARD:
            prefix = f"{category}/"
            matched = [entry for entry in current if entry.startswith(prefix)]
        else:
            target = f"{category}/{key}"
            matched = [entry for entry in current if entry == target]
        if not matched:
            missing.append(raw)
            continue
        current = [entry for entry in current if entry not in matched]
        removed.extend(matched)
    return RemoveResult(include=tuple(current), removed=tuple(removed), missing=tuple(missing))
