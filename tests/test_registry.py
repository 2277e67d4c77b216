import json
import tempfile
import unittest
from pathlib import Path

from agent_cli.errors import RegistryFormatError, RegistryMissingError
from agent_cli.registry import REGISTRY_FILENAME, load_registry, parse_registry


class TestParseRegistry(unittest.TestCase):
    def test_defaults(self) -> None:
        reg = parse_registry(
            {
                "version": "2.0.0",
                "categories": {
                    "dev": {"path": "skills/development", "skills": {"git": "02-git"}},
                },
            }
        )
        cat = reg.category("dev")
        assert cat is not None
        self.assertEqual(reg.version, "2.0.0")
        self.assertEqual(cat.kind, "skill")
        self.assertEqual(cat.name, "dev")
        self.assertEqual(cat.description, "")
        self.assertEqual(cat.prompts, {})
        self.assertEqual(cat.resolved_prompts_path, "skills/prompts")
        self.assertEqual(reg.presets, {})

    def test_agent_category_with_prompts(self) -> None:
        reg = parse_registry(
            {
                "categories": {
                    "agents": {
                        "name": "Agents",
                        "type": "agent",
                        "path": "agents",
                        "skills": {"nextjs": "nextjs"},
                        "promptsPath": "prompts/agents",
                        "prompts": {"review": "code-review.md"},
                    }
                },
                "presets": {"web": ["agents/nextjs"]},
            }
        )
        cat = reg.categories["agents"]
        self.assertEqual(cat.kind, "agent")
        self.assertEqual(cat.resolved_prompts_path, "prompts/agents")
        self.assertEqual(cat.prompts, {"review": "code-review.md"})
        self.assertEqual(reg.presets, {"web": ("agents/nextjs",)})

    def test_category_order_is_kept(self) -> None:
        reg = parse_registry(
            {"categories": {k: {"path": k, "skills": {}} for k in ["zeta", "alpha", "mid"]}}
        )
        self.assertEqual(list(reg.categories), ["zeta", "alpha", "mid"])

    def test_rejects_malformed_documents(self) -> None:
        bad = [
            [],
            {},
            {"categories": []},
            {"categories": {"dev": "x"}},
            {"categories": {"dev": {"skills": {}}}},
            {"categories": {"dev": {"path": "p", "type": "tool"}}},
            {"categories": {"dev": {"path": "p", "skills": {"git": 3}}}},
            {"categories": {"dev": {"path": "p", "skills": ["git"]}}},
            {"categories": {"dev": {"path": "p", "promptsPath": 1}}},
            {"categories": {}, "presets": {"web": "dev/git"}},
        ]
        for raw in bad:
            with self.subTest(raw=raw):
                with self.assertRaises(RegistryFormatError):
                    parse_registry(raw)


class TestLoadRegistry(unittest.TestCase):
    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(RegistryMissingError):
                load_registry(Path(td))

    def test_invalid_json(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            (Path(td) / REGISTRY_FILENAME).write_text("{not json", encoding="utf-8")
            with self.assertRaises(RegistryFormatError):
                load_registry(Path(td))

    def test_undecodable_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            (Path(td) / REGISTRY_FILENAME).write_bytes(b'{"categories": {"\xff": {}}}')
            with self.assertRaises(RegistryFormatError):
                load_registry(Path(td))

    def test_loads_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            doc = {"version": "1", "categories": {"dev": {"path": "skills/dev", "skills": {"git": "02-git"}}}}
            (Path(td) / REGISTRY_FILENAME).write_text(json.dumps(doc), encoding="utf-8")
            reg = load_registry(Path(td))
        self.assertEqual(reg.categories["dev"].entries, {"git": "02-git"})


if __name__ == "__main__":
    unittest.main()
