from __future__ import annotations

from dataclasses import dataclass


class AgentCliError(RuntimeError):
    pass


class InvalidKeyExpressionError(AgentCliError):
    pass


class UnknownCategoryError(AgentCliError):
    pass


@dataclass(frozen=True)
class UnknownEntryError(AgentCliError):
    category: str
    key: str
    available: tuple[str, ...]

    def __str__(self) -> str:
        listing = ", ".join(self.available) if self.available else "<none>"
        return f'Unknown entry: "{self.key}" in category "{self.category}". Available: {listing}'


class UnknownPresetError(AgentCliError):
    pass


class RegistryMissingError(AgentCliError):
    pass


class RegistryFormatError(AgentCliError):
    pass


class SourceError(AgentCliError):
    pass


class SourceUnreachableError(SourceError):
    pass


class RefNotFoundError(SourceError):
    pass


class ManifestMissingError(AgentCliError):
    pass


class ManifestAlreadyExistsError(AgentCliError):
    pass


class ManifestFormatError(AgentCliError):
    pass


class NothingToInstallError(AgentCliError):
    pass


class PromptNotFoundError(AgentCliError):
    pass


class ClipboardError(AgentCliError):
    pass
