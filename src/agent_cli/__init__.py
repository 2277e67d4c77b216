from ._version import __version__
from .errors import AgentCliError
from .keys import add_keys, apply_preset, remove_keys, resolve_key
from .manifest import Manifest, load_manifest, save_manifest
from .project import ProjectWorkspace
from .registry import Registry, load_registry, parse_registry
from .source import GitSourceProvider

__all__ = [
    "AgentCliError",
    "GitSourceProvider",
    "Manifest",
    "ProjectWorkspace",
    "Registry",
    "__version__",
    "add_keys",
    "apply_preset",
    "load_manifest",
    "load_registry",
    "parse_registry",
    "remove_keys",
    "resolve_key",
    "save_manifest",
]
