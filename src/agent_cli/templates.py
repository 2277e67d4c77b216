from __future__ import annotations

from pathlib import Path

from .errors import AgentCliError

AGENT_TEMPLATE = """\
# Project Agent Instructions

## Role

You are a [senior/expert] [your role] working on [project name].

## Tech Stack

| Technology | Version | Purpose |
|-----------|---------|---------|
| | | |

## Code Conventions

- Describe the patterns to follow for this project.
- Be specific. The agent will follow these literally.

## Workflow Rules

- How should the agent approach tasks?
- What testing strategy should it follow?

## Anti-Patterns

- Never [specific thing to avoid].
"""

SKILL_TEMPLATE = """\
# Skill Name

## Description

What does this skill teach? Keep this to 2-3 sentences.

## When To Use

- Situations where this skill applies.

## Instructions

### 1. First Section

Teach the first concept. Include code examples where appropriate.

### 2. Common Mistakes

What goes wrong and how to avoid it.

## Checklist

- [ ] Did you apply the principle from section 1?
"""

DEFAULT_AGENT_FILENAME = "agent.md"
DEFAULT_SKILL_DIRNAME = "my-skill"
SKILL_FILENAME = "skill.md"


def scaffold_agent(root: Path, name: str | None = None) -> Path:
    path = root / (name or DEFAULT_AGENT_FILENAME)
    if path.exists():
        raise AgentCliError(f"File already exists: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(AGENT_TEMPLATE, encoding="utf-8")
    return path


def scaffold_skill(root: Path, name: str | None = None) -> Path:
    path = root / (name or DEFAULT_SKILL_DIRNAME) / SKILL_FILENAME
    if path.exists():
        raise AgentCliError(f"File already exists: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(SKILL_TEMPLATE, encoding="utf-8")
    return path
