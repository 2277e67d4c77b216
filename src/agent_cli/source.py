from __future__ import annotations

import re
import subprocess
from pathlib import Path
from typing import Callable, Optional, Protocol

from .errors import RefNotFoundError, SourceError, SourceUnreachableError

HEAD_REF = "HEAD"
LOCAL_REF = "local"

GitRunner = Callable[[list[str], Optional[Path], float], str]


class SourceProvider(Protocol):
    def materialize(self, source: str, ref: str) -> Path:
        ...

    def latest_ref(self, root: Path) -> str:
        ...


class GitCommandError(SourceError):
    def __init__(self, args: list[str], stderr: str) -> None:
        self.command = args
        self.stderr = stderr.strip()
        super().__init__(f"git {' '.join(args)} failed: {self.stderr or 'no output'}")


def run_git(args: list[str], cwd: Path | None, timeout_s: float) -> str:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(cwd) if cwd is not None else None,
            capture_output=True,
            text=True,
            timeout=timeout_s,
        )
    except FileNotFoundError as e:
        raise SourceUnreachableError("git executable not found on PATH.") from e
    except subprocess.TimeoutExpired as e:
        raise SourceUnreachableError(f"git {' '.join(args)} timed out after {timeout_s:g}s.") from e
    if proc.returncode != 0:
        raise GitCommandError(args, proc.stderr)
    return proc.stdout


def source_to_url(source: str) -> str:
    """Convert a source like ``github:owner/repo`` to a git URL."""
    m = re.match(r"^github:(.+)$", source)
    if m:
        return f"https://github.com/{m.group(1)}.git"
    if source.startswith(("http://", "https://", "git@")):
        return source
    raise SourceUnreachableError(
        f'Unsupported source format: "{source}". Use "github:owner/repo", a full git URL or a local directory.'
    )


def local_source_path(source: str) -> Path | None:
    if source.startswith("file:"):
        return Path(source[len("file:") :]).expanduser()
    if source.startswith(("github:", "http://", "https://", "git@")):
        return None
    candidate = Path(source).expanduser()
    return candidate if candidate.is_dir() else None


def cache_dir_name(source: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", source)


class GitSourceProvider:
    """
    Materializes a content source at a ref inside an explicit cache directory.

    ``HEAD`` means the tip of the remote default branch. Local directories are
    used in place and the ref is ignored.
    """

    def __init__(self, *, cache_dir: Path, timeout_s: float = 120.0, runner: GitRunner | None = None) -> None:
        self.cache_dir = cache_dir.expanduser()
        self.timeout_s = timeout_s
        self._runner = runner or run_git

    def _git(self, args: list[str], cwd: Path | None = None) -> str:
        return self._runner(args, cwd, self.timeout_s)

    def repo_dir(self, source: str) -> Path:
        return self.cache_dir / cache_dir_name(source)

    def materialize(self, source: str, ref: str) -> Path:
        local = local_source_path(source)
        if local is not None:
            if not local.is_dir():
                raise SourceUnreachableError(f"Local source directory not found: {local}")
            return local.resolve()

        repo_url = source_to_url(source)
        repo_dir = self.repo_dir(source)

        if (repo_dir / ".git").exists():
            try:
                self._git(["fetch", "--all", "--tags", "--prune"], repo_dir)
            except GitCommandError as e:
                raise SourceUnreachableError(f"Could not fetch {source}: {e.stderr}") from e
            if ref == HEAD_REF:
                branch = self._default_branch(repo_dir)
                self._checkout(repo_dir, branch, source=source)
                self._git(["reset", "--hard", f"origin/{branch}"], repo_dir)
            else:
                self._checkout(repo_dir, ref, source=source)
                try:
                    # Fast-forward when the ref is a branch; tags and SHAs are detached.
                    self._git(["pull", "--ff-only"], repo_dir)
                except GitCommandError:
                    pass
            return repo_dir

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SourceUnreachableError(f"Could not create cache directory: {self.cache_dir}") from e
        try:
            self._git(["clone", repo_url, str(repo_dir)])
        except GitCommandError as e:
            raise SourceUnreachableError(f"Could not clone {source}: {e.stderr}") from e
        if ref != HEAD_REF:
            self._checkout(repo_dir, ref, source=source)
        return repo_dir

    def latest_ref(self, root: Path) -> str:
        if not (root / ".git").exists():
            return LOCAL_REF
        try:
            return self._git(["describe", "--tags", "--abbrev=0"], root).strip()
        except GitCommandError:
            return self._git(["rev-parse", "--short", "HEAD"], root).strip()

    def _checkout(self, repo_dir: Path, ref: str, *, source: str) -> None:
        try:
            self._git(["checkout", ref], repo_dir)
        except GitCommandError as e:
            raise RefNotFoundError(f'Ref "{ref}" not found in {source}: {e.stderr}') from e

    def _default_branch(self, repo_dir: Path) -> str:
        remote_head = self._git(["symbolic-ref", "--short", "refs/remotes/origin/HEAD"], repo_dir).strip()
        return re.sub(r"^origin/", "", remote_head)
