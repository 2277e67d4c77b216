from __future__ import annotations

from .errors import AgentCliError
from .project import AGENT_OUTPUT_FORMATS

PROG = "agent"

# command -> (help, options/subcommands offered after it)
COMMANDS: dict[str, tuple[str, tuple[str, ...]]] = {
    "init": ("Create a .agent.json manifest", ("--output", "--ref")),
    "install": ("Pull skills and compose agent instructions", ("--format", "--no-gitignore", "--json")),
    "diff": ("Preview what would change on next install", ("--format", "--json")),
    "list": ("Show entries in your manifest", ("--remote", "--json")),
    "update": ("Update the ref to the latest tag/commit", ()),
    "add": ("Add skills or agent instructions", ()),
    "remove": ("Remove entries from the manifest", ()),
    "preset": ("Apply a named preset", ("--list",)),
    "create": ("Scaffold an agent.md or skill.md template", ("agent", "skill")),
    "prompt": ("Browse and use prompts", ("list", "show", "copy")),
    "completions": ("Output shell completion script", ("bash", "zsh", "fish")),
    "config": ("Show local configuration", ("path", "show", "set")),
}

FORMATS = tuple(AGENT_OUTPUT_FORMATS)
SHELLS = ("bash", "zsh", "fish")


def _bash() -> str:
    cases = []
    for cmd, (_help, opts) in COMMANDS.items():
        if opts:
            cases.append(f'        {cmd}) COMPREPLY=( $(compgen -W "{" ".join(opts)}" -- "$cur") ) ;;')
    return "\n".join(
        [
            f"# bash completion for {PROG}",
            f"_{PROG}_completions() {{",
            '    local cur prev cmd',
            '    cur="${COMP_WORDS[COMP_CWORD]}"',
            '    prev="${COMP_WORDS[COMP_CWORD-1]}"',
            '    cmd="${COMP_WORDS[1]}"',
            '    if [ "$prev" = "--format" ]; then',
            f'        COMPREPLY=( $(compgen -W "{" ".join(FORMATS)}" -- "$cur") )',
            "        return",
            "    fi",
            '    if [ "$COMP_CWORD" -eq 1 ]; then',
            f'        COMPREPLY=( $(compgen -W "{" ".join(COMMANDS)} --version --help" -- "$cur") )',
            "        return",
            "    fi",
            '    case "$cmd" in',
            *cases,
            "    esac",
            "}",
            f"complete -F _{PROG}_completions {PROG}",
            "",
        ]
    )


def _zsh() -> str:
    described = [f"        '{cmd}:{help_}'" for cmd, (help_, _opts) in COMMANDS.items()]
    cases = []
    for cmd, (_help, opts) in COMMANDS.items():
        if opts:
            cases.append(f"        {cmd}) compadd -- {' '.join(opts)} ;;")
    return "\n".join(
        [
            f"#compdef {PROG}",
            "",
            f"_{PROG}() {{",
            "    local -a commands",
            "    commands=(",
            *described,
            "    )",
            "    if (( CURRENT == 2 )); then",
            "        _describe 'command' commands",
            "        return",
            "    fi",
            "    if [[ ${words[CURRENT-1]} == --format ]]; then",
            f"        compadd -- {' '.join(FORMATS)}",
            "        return",
            "    fi",
            "    case ${words[2]} in",
            *cases,
            "    esac",
            "}",
            "",
            f'_{PROG} "$@"',
            "",
        ]
    )


def _fish() -> str:
    lines = [f"# fish completion for {PROG}", f"complete -c {PROG} -f"]
    for cmd, (help_, opts) in COMMANDS.items():
        lines.append(f"complete -c {PROG} -n '__fish_use_subcommand' -a {cmd} -d '{help_}'")
        for opt in opts:
            if opt.startswith("--"):
                lines.append(f"complete -c {PROG} -n '__fish_seen_subcommand_from {cmd}' -l {opt[2:]}")
            else:
                lines.append(f"complete -c {PROG} -n '__fish_seen_subcommand_from {cmd}' -a {opt}")
    lines.append(f"complete -c {PROG} -n '__fish_seen_argument -l format' -a '{' '.join(FORMATS)}'")
    return "\n".join(lines) + "\n"


def generate_completions(shell: str) -> str:
    if shell == "bash":
        return _bash()
    if shell == "zsh":
        return _zsh()
    if shell == "fish":
        return _fish()
    raise AgentCliError(f'Unsupported shell: "{shell}". Use one of: {", ".join(SHELLS)}')
