from __future__ import annotations

import argparse
import json
import sys
import textwrap
from dataclasses import replace
from pathlib import Path
from typing import Any

from ._version import __version__
from .completions import SHELLS, generate_completions
from .compose import LOCAL_INSTRUCTIONS_FILENAME
from .config import Config, apply_env, config_path, load_config, save_config
from .errors import AgentCliError, ClipboardError, ManifestAlreadyExistsError, UnknownPresetError
from .keys import AddResult, add_keys, apply_preset, remove_keys
from .manifest import (
    DEFAULT_AGENT_OUTPUT,
    DEFAULT_OUTPUT_DIR,
    MANIFEST_FILENAME,
    Manifest,
    create_manifest,
    load_manifest,
    manifest_exists,
    save_manifest,
)
from .project import AGENT_OUTPUT_FORMATS, ProjectWorkspace, resolve_agent_output_path
from .prompts import copy_to_clipboard, list_prompts, read_prompt, resolve_prompt
from .reconcile import Status
from .registry import Registry, load_registry
from .source import HEAD_REF, GitSourceProvider, SourceProvider
from .templates import scaffold_agent, scaffold_skill

_DIFF_MARKERS = {
    Status.NEW: "+",
    Status.MODIFIED: "~",
    Status.UNCHANGED: "=",
    Status.REMOVED: "-",
}


def _print_table(rows: list[list[str]]) -> None:
    if not rows:
        return
    widths = [0] * len(rows[0])
    for r in rows:
        for i, c in enumerate(r):
            widths[i] = max(widths[i], len(c))
    for r in rows:
        line = "  ".join(c.ljust(widths[i]) for i, c in enumerate(r))
        print(line.rstrip())


def _print_warnings(warnings: tuple[str, ...] | list[str]) -> None:
    for warning in warnings:
        print(f"warning: {warning}")


def _runtime_config(args: argparse.Namespace) -> Config:
    # Env overrides config; CLI overrides both.
    cfg = apply_env(load_config())
    cache_dir = getattr(args, "cache_dir", None)
    if cache_dir:
        cfg = replace(cfg, cache_dir=cache_dir)
    return cfg


def _make_provider(args: argparse.Namespace) -> SourceProvider:
    cfg = _runtime_config(args)
    return GitSourceProvider(cache_dir=cfg.resolved_cache_dir(), timeout_s=cfg.git_timeout_s)


def _project_root(args: argparse.Namespace) -> Path:
    return Path(getattr(args, "project_dir", None) or ".").expanduser().resolve()


def _fetch_registry(provider: SourceProvider, source: str, ref: str) -> tuple[Path, Registry]:
    source_root = provider.materialize(source, ref)
    return source_root, load_registry(source_root)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="agent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Pull agent skills and instructions from a central repository.",
        epilog=textwrap.dedent(
            f"""\
            Local overrides:
              Create a {LOCAL_INSTRUCTIONS_FILENAME} file in your project root. Its contents are
              appended to the composed agent instructions during `agent install`.

            Environment variables:
              AGENT_CLI_CACHE_DIR, AGENT_CLI_DEFAULT_SOURCE, AGENT_CLI_GIT_TIMEOUT_S, AGENT_CLI_CONFIG_PATH
            """
        ),
    )

    def _add_runtime_overrides(parser: argparse.ArgumentParser, *, nested: bool = False) -> None:
        # Available both before and after subcommands, e.g.:
        #   agent --project-dir app install
        #   agent install --project-dir app
        default = argparse.SUPPRESS if nested else None
        parser.add_argument("--project-dir", default=default, help="Project directory (default: cwd)")
        parser.add_argument("--cache-dir", default=default, help="Directory for cached source checkouts")

    _add_runtime_overrides(p)
    p.add_argument("-v", "--version", action="version", version=f"agent-cli {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    init = sub.add_parser("init", help=f"Create a {MANIFEST_FILENAME} manifest")
    _add_runtime_overrides(init, nested=True)
    init.add_argument("source", nargs="?", default=None, help="Content source, e.g. github:owner/repo")
    init.add_argument("--output", default=DEFAULT_OUTPUT_DIR, help=f"Output directory for skills (default: {DEFAULT_OUTPUT_DIR})")
    init.add_argument("--agent-output", default=DEFAULT_AGENT_OUTPUT, help="Path of the composed agent instructions")
    init.add_argument("--ref", default=None, help="Pin a ref instead of the latest tag/commit")

    install = sub.add_parser("install", help="Pull skills and compose agent instructions")
    _add_runtime_overrides(install, nested=True)
    install.add_argument("--format", choices=sorted(AGENT_OUTPUT_FORMATS), help="Agent instructions output target")
    install.add_argument("--no-gitignore", action="store_true", help="Skip adding generated files to .gitignore")
    install.add_argument("--json", action="store_true", help="Output JSON")

    diff = sub.add_parser("diff", help="Preview what would change on next install")
    _add_runtime_overrides(diff, nested=True)
    diff.add_argument("--format", choices=sorted(AGENT_OUTPUT_FORMATS), help="Agent instructions output target")
    diff.add_argument("--json", action="store_true", help="Output JSON")

    lst = sub.add_parser("list", help="Show entries in your manifest")
    _add_runtime_overrides(lst, nested=True)
    lst.add_argument("--remote", action="store_true", help="Show all available entries from the registry")
    lst.add_argument("--json", action="store_true", help="Output JSON")

    update = sub.add_parser("update", help="Update the ref to the latest tag/commit")
    _add_runtime_overrides(update, nested=True)

    add = sub.add_parser("add", help="Add skill(s) or agent instruction(s)")
    _add_runtime_overrides(add, nested=True)
    add.add_argument("keys", nargs="+", help="category/key, category/*, category or preset name")

    remove = sub.add_parser("remove", aliases=["rm"], help="Remove entries from the manifest")
    _add_runtime_overrides(remove, nested=True)
    remove.add_argument("keys", nargs="+", help="category/key or category/*")

    preset = sub.add_parser("preset", help="Apply a named preset")
    _add_runtime_overrides(preset, nested=True)
    preset.add_argument("name", nargs="?", default=None)
    preset.add_argument("--list", action="store_true", help="Show available presets")

    create = sub.add_parser("create", help="Scaffold a new agent.md or skill.md template")
    _add_runtime_overrides(create, nested=True)
    create.add_argument("type", choices=["agent", "skill"])
    create.add_argument("path", nargs="?", default=None, help="File (agent) or folder (skill) to create")

    prompt = sub.add_parser("prompt", help="Browse, view and copy prompts")
    prompt_sub = prompt.add_subparsers(dest="subcmd", required=True)
    prompt_list = prompt_sub.add_parser("list", help="Show prompts for your included categories")
    _add_runtime_overrides(prompt_list, nested=True)
    prompt_list.add_argument("--all", action="store_true", help="Show all available prompts")
    prompt_show = prompt_sub.add_parser("show", help="Display a prompt")
    _add_runtime_overrides(prompt_show, nested=True)
    prompt_show.add_argument("key", help="category/prompt")
    prompt_copy = prompt_sub.add_parser("copy", help="Copy a prompt to the clipboard")
    _add_runtime_overrides(prompt_copy, nested=True)
    prompt_copy.add_argument("key", help="category/prompt")

    completions = sub.add_parser("completions", help="Output shell completion script")
    completions.add_argument("shell", choices=list(SHELLS))

    cfg = sub.add_parser("config", help="Manage local config")
    cfg_sub = cfg.add_subparsers(dest="subcmd", required=True)
    cfg_sub.add_parser("path", help="Print config path")
    cfg_sub.add_parser("show", help="Show effective config")
    cfg_set = cfg_sub.add_parser("set", help="Set config fields")
    cfg_set.add_argument("--cache-dir", dest="set_cache_dir")
    cfg_set.add_argument("--default-source")
    cfg_set.add_argument("--git-timeout-s", type=float)

    return p


def cmd_init(args: argparse.Namespace) -> int:
    root = _project_root(args)
    if manifest_exists(root):
        raise ManifestAlreadyExistsError(f"{MANIFEST_FILENAME} already exists. Delete it first or edit manually.")
    source = args.source or _runtime_config(args).default_source
    provider = _make_provider(args)

    source_root = provider.materialize(source, args.ref or HEAD_REF)
    ref = args.ref or provider.latest_ref(source_root)
    manifest = Manifest(source=source, ref=ref, output_dir=args.output, agent_output=args.agent_output)
    path = create_manifest(root, manifest)

    print(f"Created {path.name} (ref: {ref})")
    print("Next steps:")
    print("  agent add development/architecture   # add skills")
    print("  agent add agents/nextjs               # add agent instructions")
    print("  agent install                         # install everything")
    print("  agent list --remote                   # browse what's available")
    return 0


def cmd_install(args: argparse.Namespace) -> int:
    root = _project_root(args)
    manifest = load_manifest(root)
    if not manifest.include:
        print("No skills or agents in your manifest. Use `agent add <category/key>` first.")
        return 0

    agent_output = resolve_agent_output_path(args.format, manifest.agent_output)
    provider = _make_provider(args)
    source_root, registry = _fetch_registry(provider, manifest.source, manifest.ref)
    workspace = ProjectWorkspace(
        root=root,
        manifest=manifest,
        registry=registry,
        source_root=source_root,
        agent_output=agent_output,
    )
    result = workspace.install(update_gitignore=not args.no_gitignore)

    payload = {
        "installed": list(result.installed),
        "composed": list(result.composed),
        "prompts": list(result.prompts),
        "removed": list(result.removed),
        "output_dir": str(result.output_dir),
        "agent_output": str(result.agent_output) if result.agent_output else None,
        "local_overrides": result.used_local_overrides,
        "gitignore_added": list(result.gitignore_added),
        "warnings": list(result.warnings),
    }

    if args.json:
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    print(f"source: {manifest.source} @ {manifest.ref}")
    print(f"skills: {manifest.output_dir}")
    print(f"agent: {agent_output}")
    _print_table(
        [
            ["ACTION", "COUNT"],
            ["installed", str(len(result.installed))],
            ["composed", str(len(result.composed))],
            ["prompts", str(len(result.prompts))],
            ["removed", str(len(result.removed))],
        ]
    )
    for key in result.installed:
        print(f"installed: {key}")
    for key in result.composed:
        print(f"composed: {key} -> {agent_output}")
    if result.used_local_overrides:
        print(f"composed: {LOCAL_INSTRUCTIONS_FILENAME} -> {agent_output} (local overrides)")
    for key in result.prompts:
        print(f"prompt: {key}")
    for name in result.removed:
        print(f"removed: {name}")
    for entry in result.gitignore_added:
        print(f"gitignore: {entry}")
    _print_warnings(result.warnings)
    return 0


def cmd_diff(args: argparse.Namespace) -> int:
    root = _project_root(args)
    manifest = load_manifest(root)
    if not manifest.include:
        print("No entries in manifest. Nothing to diff.")
        return 0

    agent_output = resolve_agent_output_path(args.format, manifest.agent_output)
    provider = _make_provider(args)
    source_root, registry = _fetch_registry(provider, manifest.source, manifest.ref)
    workspace = ProjectWorkspace(
        root=root,
        manifest=manifest,
        registry=registry,
        source_root=source_root,
        agent_output=agent_output,
    )
    result = workspace.diff()

    if args.json:
        payload = {
            "records": [
                {"name": r.name, "key": r.key, "status": r.status.value} for r in result.records
            ],
            "changes": result.change_count,
            "warnings": list(result.warnings),
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    for record in result.records:
        label = record.key or record.name
        note = "will be removed" if record.status is Status.REMOVED else record.status.value
        print(f"{_DIFF_MARKERS[record.status]}  {label}  ({note})")
    _print_warnings(result.warnings)
    if result.change_count == 0:
        print("No changes detected.")
    else:
        print(f"{result.change_count} change(s) detected. Run `agent install` to apply.")
    return 0


def _registry_payload(registry: Registry, manifest: Manifest) -> dict[str, Any]:
    included = set(manifest.include)
    return {
        "categories": {
            key: {
                "name": cat.name,
                "description": cat.description,
                "type": cat.kind,
                "entries": {
                    entry: {"folder": folder, "included": f"{key}/{entry}" in included}
                    for entry, folder in cat.entries.items()
                },
                "prompts": sorted(cat.prompts),
            }
            for key, cat in registry.categories.items()
        },
        "presets": {name: list(patterns) for name, patterns in registry.presets.items()},
    }


def cmd_list(args: argparse.Namespace) -> int:
    root = _project_root(args)
    manifest = load_manifest(root)

    if not args.remote:
        if args.json:
            print(json.dumps({"source": manifest.source, "ref": manifest.ref, "include": list(manifest.include)}, indent=2))
            return 0
        if not manifest.include:
            print("No entries included. Use `agent add <category/key>`.")
            return 0
        print(f"Included entries ({manifest.source} @ {manifest.ref})")
        for entry in manifest.include:
            print(f"  {entry}")
        return 0

    provider = _make_provider(args)
    source_root, registry = _fetch_registry(provider, manifest.source, HEAD_REF)
    latest_ref = provider.latest_ref(source_root)

    if args.json:
        payload = _registry_payload(registry, manifest)
        payload["latest_ref"] = latest_ref
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    print(f"Available resources ({manifest.source} @ {latest_ref})")
    if manifest.ref != latest_ref:
        print(f"Your manifest is pinned to {manifest.ref}. Run `agent update` to use the latest ref.")
    for cat_key, cat in registry.categories.items():
        print("")
        print(f"{cat.name} [{cat.kind}] ({cat_key})")
        if cat.description:
            print(f"  {cat.description}")
        rows: list[list[str]] = []
        for entry, folder in cat.entries.items():
            key = f"{cat_key}/{entry}"
            rows.append(["  *" if key in manifest.include else "  -", key, folder])
        _print_table(rows)
        if cat.prompts:
            print(f"  {len(cat.prompts)} prompt(s) available. Use `agent prompt list --all` to browse.")
    print("")
    print("* = included in your manifest, - = available")
    return 0


def cmd_update(args: argparse.Namespace) -> int:
    root = _project_root(args)
    manifest = load_manifest(root)
    provider = _make_provider(args)
    source_root = provider.materialize(manifest.source, HEAD_REF)
    latest_ref = provider.latest_ref(source_root)

    if latest_ref == manifest.ref:
        print(f"Already up-to-date ({manifest.ref})")
        return 0

    save_manifest(root, manifest.with_ref(latest_ref))
    print(f"Updated ref: {manifest.ref} -> {latest_ref}")
    print("Run `agent install` to apply the update.")
    return 0


def _report_add(result: AddResult) -> None:
    for key in result.added:
        print(f"added: {key}")
    for key in result.skipped:
        print(f"skipped: {key} (already included)")
    for rejection in result.rejected:
        print(f"rejected: {rejection.token} ({rejection.message})")


def _latest_registry(args: argparse.Namespace, manifest: Manifest) -> tuple[Registry, str]:
    provider = _make_provider(args)
    source_root, registry = _fetch_registry(provider, manifest.source, HEAD_REF)
    return registry, provider.latest_ref(source_root)


def _save_after_add(root: Path, manifest: Manifest, result: AddResult, latest_ref: str) -> bool:
    ref_updated = manifest.ref != latest_ref
    if result.changed or ref_updated:
        save_manifest(root, manifest.with_include(result.include).with_ref(latest_ref))
    if ref_updated:
        print(f"Updated manifest ref to {latest_ref}")
    return ref_updated


def cmd_add(args: argparse.Namespace) -> int:
    root = _project_root(args)
    manifest = load_manifest(root)
    registry, latest_ref = _latest_registry(args, manifest)

    result = add_keys(manifest.include, args.keys, registry)
    _report_add(result)
    _save_after_add(root, manifest, result, latest_ref)

    _print_table(
        [
            ["RESULT", "COUNT"],
            ["added", str(len(result.added))],
            ["skipped", str(len(result.skipped))],
            ["rejected", str(len(result.rejected))],
        ]
    )
    if result.added:
        print("Run `agent install` to download.")
    return 0


def cmd_remove(args: argparse.Namespace) -> int:
    root = _project_root(args)
    manifest = load_manifest(root)

    result = remove_keys(manifest.include, args.keys)
    for key in result.removed:
        print(f"removed: {key}")
    for token in result.missing:
        print(f"skipped: {token} (not in manifest)")
    if result.changed:
        save_manifest(root, manifest.with_include(result.include))
        print(f"Removed {len(result.removed)} item(s). Run `agent install` to clean up.")
    return 0


def cmd_preset(args: argparse.Namespace) -> int:
    if not args.list and not args.name:
        raise AgentCliError("Usage: agent preset <name> | agent preset --list")

    root = _project_root(args)
    manifest = load_manifest(root)
    registry, latest_ref = _latest_registry(args, manifest)
    if not registry.presets:
        raise UnknownPresetError("No presets defined in the registry.")

    if args.list:
        if manifest.ref != latest_ref:
            save_manifest(root, manifest.with_ref(latest_ref))
            print(f"Updated manifest ref to {latest_ref}")
        print(f"Available presets ({manifest.source} @ {latest_ref})")
        for name, patterns in registry.presets.items():
            print(f"  {name}")
            for pattern in patterns:
                print(f"    - {pattern}")
        return 0

    result = apply_preset(manifest.include, args.name, registry)
    print(f"Applying preset: {args.name}")
    _report_add(result)
    _save_after_add(root, manifest, result, latest_ref)
    if result.added:
        print(f'Added {len(result.added)} item(s) via preset "{args.name}". Run `agent install` to download.')
    else:
        print(f'All entries from preset "{args.name}" are already in your manifest.')
    return 0


def cmd_create(args: argparse.Namespace) -> int:
    root = _project_root(args)
    if args.type == "agent":
        path = scaffold_agent(root, args.path)
        print(f"Created {path}. Edit it with your project-specific instructions.")
        print(f"Tip: rename it to {LOCAL_INSTRUCTIONS_FILENAME} to use it as local overrides.")
        return 0
    path = scaffold_skill(root, args.path)
    print(f"Created {path}. Edit it with your skill content.")
    print("To publish it, reference its folder from the source registry.json.")
    return 0


def cmd_prompt(args: argparse.Namespace) -> int:
    root = _project_root(args)
    manifest = load_manifest(root)
    provider = _make_provider(args)
    source_root, registry = _fetch_registry(provider, manifest.source, manifest.ref)

    if args.subcmd == "list":
        categories = None if args.all else manifest.included_categories()
        refs = list_prompts(registry, categories=categories)
        if not refs:
            if args.all:
                print("No prompts defined in the registry.")
            else:
                print("No prompts available for your included categories. Use `agent prompt list --all`.")
            return 0
        rows = [["KEY", "FILE"]] + [[ref.full_key, ref.filename] for ref in refs]
        _print_table(rows)
        return 0

    ref = resolve_prompt(args.key, registry)
    content = read_prompt(ref, source_root=source_root)

    if args.subcmd == "show":
        print(content)
        return 0

    if args.subcmd == "copy":
        try:
            tool = copy_to_clipboard(content)
        except ClipboardError as e:
            print(f"warning: {e} Content printed below instead.", file=sys.stderr)
            print(content)
            return 0
        print(f"Copied {ref.full_key} to clipboard ({tool})")
        return 0

    raise AssertionError("unreachable")


def cmd_completions(args: argparse.Namespace) -> int:
    sys.stdout.write(generate_completions(args.shell))
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    if args.subcmd == "path":
        print(str(config_path()))
        return 0

    if args.subcmd == "show":
        cfg = apply_env(load_config())
        payload = {
            "cache_dir": str(cfg.resolved_cache_dir()),
            "default_source": cfg.default_source,
            "git_timeout_s": cfg.git_timeout_s,
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    if args.subcmd == "set":
        cfg = load_config()
        cfg = Config(
            cache_dir=args.set_cache_dir if args.set_cache_dir is not None else cfg.cache_dir,
            default_source=args.default_source or cfg.default_source,
            git_timeout_s=args.git_timeout_s if args.git_timeout_s is not None else cfg.git_timeout_s,
        )
        path = save_config(cfg)
        print(f"Saved config to {path}")
        return 0

    raise AssertionError("unreachable")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.cmd == "init":
            return cmd_init(args)
        if args.cmd == "install":
            return cmd_install(args)
        if args.cmd == "diff":
            return cmd_diff(args)
        if args.cmd == "list":
            return cmd_list(args)
        if args.cmd == "update":
            return cmd_update(args)
        if args.cmd == "add":
            return cmd_add(args)
        if args.cmd in ("remove", "rm"):
            return cmd_remove(args)
        if args.cmd == "preset":
            return cmd_preset(args)
        if args.cmd == "create":
            return cmd_create(args)
        if args.cmd == "prompt":
            return cmd_prompt(args)
        if args.cmd == "completions":
            return cmd_completions(args)
        if args.cmd == "config":
            return cmd_config(args)
        raise AssertionError("unreachable")
    except AgentCliError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
