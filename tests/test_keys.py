import unittest

from agent_cli.errors import InvalidKeyExpressionError, UnknownCategoryError, UnknownEntryError, UnknownPresetError
from agent_cli.keys import (
    ExactExpr,
    PresetExpr,
    WildcardExpr,
    add_keys,
    apply_preset,
    expand_keys,
    parse_key_expression,
    remove_keys,
    resolve_key,
)
from agent_cli.registry import parse_registry


def _registry():
    return parse_registry(
        {
            "version": "1.0.0",
            "categories": {
                "dev": {
                    "name": "Development",
                    "path": "skills/dev",
                    "skills": {"git": "02-git", "arch": "01-arch"},
                },
                "azure-cloud": {
                    "name": "Azure",
                    "path": "skills/azure",
                    "skills": {"functions": "01-functions", "storage": "02-storage"},
                },
                "agents": {
                    "name": "Agents",
                    "type": "agent",
                    "path": "agents",
                    "skills": {"nextjs": "nextjs", "python": "python"},
                },
            },
            "presets": {
                "web": ["dev/git", "agents/nextjs"],
                "cloud": ["azure/*", "dev/git"],
                "broken": ["dev/git", "nope/x", "dev/missing"],
                "nested": ["web"],
            },
        }
    )


class TestParseKeyExpression(unittest.TestCase):
    def test_variants(self) -> None:
        reg = _registry()
        self.assertEqual(parse_key_expression("web", reg), PresetExpr(name="web"))
        self.assertEqual(parse_key_expression("dev", reg), WildcardExpr(category="dev", raw_category="dev"))
        self.assertEqual(parse_key_expression("dev/*", reg), WildcardExpr(category="dev", raw_category="dev"))
        self.assertEqual(
            parse_key_expression("azure/functions", reg),
            ExactExpr(category="azure-cloud", key="functions", raw_category="azure"),
        )

    def test_presets_not_recognized_when_disallowed(self) -> None:
        expr = parse_key_expression("web", _registry(), allow_presets=False)
        self.assertIsInstance(expr, WildcardExpr)

    def test_malformed_tokens(self) -> None:
        reg = _registry()
        for raw in ["", "   ", "/git", "dev/", "dev/git/extra"]:
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidKeyExpressionError):
                    parse_key_expression(raw, reg)


class TestResolveKey(unittest.TestCase):
    def test_wildcard_expands_all_entries(self) -> None:
        self.assertEqual(set(resolve_key("dev/*", _registry())), {"dev/git", "dev/arch"})

    def test_wildcard_matches_category_entries_exactly(self) -> None:
        reg = _registry()
        for cat_key, cat in reg.categories.items():
            with self.subTest(category=cat_key):
                resolved = resolve_key(f"{cat_key}/*", reg)
                self.assertEqual(len(resolved), len(cat.entries))
                self.assertEqual(set(resolved), {f"{cat_key}/{k}" for k in cat.entries})

    def test_bare_category_is_wildcard(self) -> None:
        reg = _registry()
        self.assertEqual(resolve_key("dev", reg), resolve_key("dev/*", reg))

    def test_alias_resolves_like_canonical(self) -> None:
        reg = _registry()
        self.assertEqual(resolve_key("azure/*", reg), resolve_key("azure-cloud/*", reg))
        self.assertEqual(resolve_key("azure/functions", reg), ("azure-cloud/functions",))

    def test_unknown_category_lists_available(self) -> None:
        with self.assertRaises(UnknownCategoryError) as ctx:
            resolve_key("nope/x", _registry())
        self.assertIn('"nope"', str(ctx.exception))
        self.assertIn("dev, azure-cloud, agents", str(ctx.exception))

    def test_unknown_entry_lists_available(self) -> None:
        with self.assertRaises(UnknownEntryError) as ctx:
            resolve_key("dev/missing", _registry())
        self.assertEqual(ctx.exception.category, "dev")
        self.assertEqual(ctx.exception.available, ("git", "arch"))
        self.assertIn("Available: git, arch", str(ctx.exception))

    def test_preset_is_flattened(self) -> None:
        self.assertEqual(resolve_key("web", _registry()), ("dev/git", "agents/nextjs"))

    def test_strict_preset_raises_first_failure(self) -> None:
        with self.assertRaises(UnknownCategoryError):
            resolve_key("broken", _registry())


class TestExpandKeys(unittest.TestCase):
    def test_rejection_does_not_abort_batch(self) -> None:
        exp = expand_keys(["nope/x", "dev/git", "dev/missing", "agents/python"], _registry())
        self.assertEqual(exp.keys, ("dev/git", "agents/python"))
        self.assertEqual([r.token for r in exp.rejected], ["nope/x", "dev/missing"])
        self.assertIsInstance(exp.rejected[1].error, UnknownEntryError)

    def test_results_are_deduplicated(self) -> None:
        exp = expand_keys(["dev/git", "dev/*", "web"], _registry())
        self.assertEqual(exp.keys, ("dev/git", "dev/arch", "agents/nextjs"))

    def test_preset_items_never_expand_presets(self) -> None:
        exp = expand_keys(["nested"], _registry())
        self.assertEqual(exp.keys, ())
        self.assertEqual(len(exp.rejected), 1)
        self.assertIsInstance(exp.rejected[0].error, UnknownCategoryError)


class TestAddKeys(unittest.TestCase):
    def test_adding_existing_key_is_noop(self) -> None:
        res = add_keys(("dev/git",), ["dev/git"], _registry())
        self.assertEqual(res.include, ("dev/git",))
        self.assertEqual(res.added, ())
        self.assertEqual(res.skipped, ("dev/git",))
        self.assertFalse(res.changed)

    def test_add_is_idempotent(self) -> None:
        reg = _registry()
        first = add_keys((), ["dev/*", "agents/nextjs"], reg)
        second = add_keys(first.include, ["dev/*", "agents/nextjs"], reg)
        self.assertEqual(first.include, second.include)
        self.assertEqual(second.added, ())

    def test_appends_in_order(self) -> None:
        res = add_keys(("agents/python",), ["dev/arch", "azure"], _registry())
        self.assertEqual(
            res.include,
            ("agents/python", "dev/arch", "azure-cloud/functions", "azure-cloud/storage"),
        )
        self.assertEqual(res.added, res.include[1:])

    def test_partial_failure_keeps_valid_tokens(self) -> None:
        res = add_keys((), ["dev/git", "nope/*"], _registry())
        self.assertEqual(res.include, ("dev/git",))
        self.assertEqual(len(res.rejected), 1)
        self.assertIn("Unknown category", res.rejected[0].message)


class TestApplyPreset(unittest.TestCase):
    def test_overlapping_presets_union(self) -> None:
        reg = _registry()
        first = apply_preset((), "web", reg)
        second = apply_preset(first.include, "cloud", reg)
        self.assertEqual(
            second.include,
            ("dev/git", "agents/nextjs", "azure-cloud/functions", "azure-cloud/storage"),
        )
        self.assertEqual(second.skipped, ("dev/git",))

    def test_unknown_preset(self) -> None:
        with self.assertRaises(UnknownPresetError) as ctx:
            apply_preset((), "missing", _registry())
        self.assertIn("web, cloud, broken, nested", str(ctx.exception))

    def test_preset_with_bad_items_applies_good_ones(self) -> None:
        res = apply_preset((), "broken", _registry())
        self.assertEqual(res.include, ("dev/git",))
        self.assertEqual([r.token for r in res.rejected], ["nope/x", "dev/missing"])


class TestRemoveKeys(unittest.TestCase):
    def test_exact_removal_preserves_order(self) -> None:
        res = remove_keys(("a/1", "b/2", "a/3", "c/4"), ["b/2"])
        self.assertEqual(res.include, ("a/1", "a/3", "c/4"))
        self.assertEqual(res.removed, ("b/2",))
        self.assertTrue(res.changed)

    def test_wildcard_and_bare_category(self) -> None:
        include = ("dev/git", "agents/nextjs", "dev/arch")
        self.assertEqual(remove_keys(include, ["dev/*"]).include, ("agents/nextjs",))
        self.assertEqual(remove_keys(include, ["dev"]).include, ("agents/nextjs",))

    def test_alias_is_honored(self) -> None:
        res = remove_keys(("azure-cloud/functions", "dev/git"), ["azure/*"])
        self.assertEqual(res.include, ("dev/git",))

    def test_missing_tokens_reported(self) -> None:
        res = remove_keys(("dev/git",), ["dev/arch", "other"])
        self.assertEqual(res.include, ("dev/git",))
        self.assertEqual(res.missing, ("dev/arch", "other"))
        self.assertFalse(res.changed)


if __name__ == "__main__":
    unittest.main()
