import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from agent_cli.errors import ClipboardError, InvalidKeyExpressionError, PromptNotFoundError, UnknownCategoryError
from agent_cli.prompts import copy_to_clipboard, list_prompts, read_prompt, resolve_prompt
from agent_cli.registry import parse_registry


def _registry():
    return parse_registry(
        {
            "categories": {
                "dev": {
                    "path": "skills/dev",
                    "skills": {"git": "02-git"},
                    "prompts": {"review": "code-review.md", "commit": "commit-msg.md"},
                },
                "azure-cloud": {
                    "path": "skills/azure",
                    "skills": {},
                    "promptsPath": "prompts/azure",
                    "prompts": {"cost": "cost.md"},
                },
                "empty": {"path": "skills/empty", "skills": {}},
            }
        }
    )


class TestListPrompts(unittest.TestCase):
    def test_all_and_filtered(self) -> None:
        reg = _registry()
        self.assertEqual([p.full_key for p in list_prompts(reg)], ["dev/review", "dev/commit", "azure-cloud/cost"])
        self.assertEqual([p.full_key for p in list_prompts(reg, categories={"azure-cloud"})], ["azure-cloud/cost"])
        self.assertEqual(list_prompts(reg, categories=set()), [])


class TestResolvePrompt(unittest.TestCase):
    def test_paths(self) -> None:
        reg = _registry()
        self.assertEqual(resolve_prompt("dev/review", reg).source_path, "skills/prompts/code-review.md")
        self.assertEqual(resolve_prompt("azure/cost", reg).source_path, "prompts/azure/cost.md")

    def test_errors(self) -> None:
        reg = _registry()
        with self.assertRaises(InvalidKeyExpressionError):
            resolve_prompt("review", reg)
        with self.assertRaises(UnknownCategoryError):
            resolve_prompt("nope/review", reg)
        with self.assertRaises(PromptNotFoundError) as ctx:
            resolve_prompt("dev/missing", reg)
        self.assertIn("review, commit", str(ctx.exception))
        with self.assertRaises(PromptNotFoundError) as ctx:
            resolve_prompt("empty/x", reg)
        self.assertIn("No prompts defined", str(ctx.exception))

    def test_read_prompt(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            ref = resolve_prompt("dev/review", _registry())
            with self.assertRaises(PromptNotFoundError):
                read_prompt(ref, source_root=root)
            (root / "skills/prompts").mkdir(parents=True)
            (root / "skills/prompts/code-review.md").write_text("Review.\n", encoding="utf-8")
            self.assertEqual(read_prompt(ref, source_root=root), "Review.\n")


class TestClipboard(unittest.TestCase):
    def test_first_available_tool_wins(self) -> None:
        done = subprocess.CompletedProcess(args=["xsel"], returncode=0, stdout="", stderr="")
        with (
            patch("agent_cli.prompts.sys.platform", "linux"),
            patch("agent_cli.prompts.shutil.which", side_effect=lambda name: None if name == "xclip" else f"/usr/bin/{name}"),
            patch("agent_cli.prompts.subprocess.run", return_value=done) as run,
        ):
            tool = copy_to_clipboard("hello")
        self.assertEqual(tool, "xsel")
        self.assertEqual(run.call_args.kwargs["input"], "hello")

    def test_no_tool_available(self) -> None:
        with (
            patch("agent_cli.prompts.sys.platform", "linux"),
            patch("agent_cli.prompts.shutil.which", return_value=None),
        ):
            with self.assertRaises(ClipboardError):
                copy_to_clipboard("hello")


if __name__ == "__main__":
    unittest.main()
