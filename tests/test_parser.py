import unittest

from api.app.errors import InvalidFilenameError
from api.app.parser import category_name_for, display_name_for, parse_filename, tags_for


class FullNamingTests(unittest.TestCase):
    def test_four_field_name(self):
        meta = parse_filename("atm__all_the_mods_9__my_world__1.0.43.tar.xz")
        self.assertEqual(meta.category, "atm")
        self.assertEqual(meta.group, "all_the_mods_9")
        self.assertEqual(meta.world_name, "my_world")
        self.assertEqual(meta.version, "1.0.43")
        self.assertEqual(meta.naming, "full")
        self.assertEqual(meta.category_name, "All The Mods")
        self.assertEqual(meta.display_name, "My World")
        self.assertIn("Version 1.0.43.", meta.description)
        self.assertEqual(meta.tags, ("modded",))

    def test_three_field_name_has_no_version(self):
        meta = parse_filename("create__create_above__sky_base.zip")
        self.assertEqual(meta.category_name, "Create")
        self.assertEqual(meta.group, "create_above")
        self.assertEqual(meta.world_name, "sky_base")
        self.assertIsNone(meta.version)
        self.assertEqual(meta.tags, ("engineering", "skyblock"))
        self.assertNotIn("Version", meta.description)

    def test_empty_tokens_fall_back_to_defaults(self):
        meta = parse_filename("____.zip")
        self.assertEqual(meta.naming, "full")
        self.assertEqual(meta.category, "unknown")
        self.assertEqual(meta.group, "unknown")
        self.assertEqual(meta.world_name, "default")
        self.assertIsNone(meta.version)
        self.assertEqual(meta.category_name, "Unknown")


class ShortNamingTests(unittest.TestCase):
    def test_head_is_split_on_last_underscore(self):
        meta = parse_filename("atm_atm10_v2.42__main.tar.xz")
        self.assertEqual(meta.naming, "short")
        self.assertEqual(meta.category, "atm_atm10")
        self.assertEqual(meta.version, "v2.42")
        self.assertEqual(meta.world_name, "main")
        self.assertEqual(meta.group, "default")
        self.assertEqual(meta.category_name, "All The Mods")
        self.assertEqual(meta.display_name, "Main")

    def test_head_without_underscore_has_no_version(self):
        meta = parse_filename("tekkit__old_world.7z")
        self.assertEqual(meta.category, "tekkit")
        self.assertIsNone(meta.version)
        self.assertEqual(meta.world_name, "old_world")
        self.assertEqual(meta.category_name, "Tekkit")


class NonconformingTests(unittest.TestCase):
    def test_name_without_delimiter_is_flagged(self):
        meta = parse_filename("my_stoneblock_world.rar")
        self.assertEqual(meta.naming, "nonconforming")
        self.assertEqual(meta.category, "unknown")
        self.assertEqual(meta.group, "unknown")
        self.assertEqual(meta.world_name, "my_stoneblock_world")
        self.assertIsNone(meta.version)
        self.assertEqual(meta.display_name, "My Stoneblock World")
        self.assertEqual(meta.tags, ("challenge",))

    def test_rejects_unvalidated_names(self):
        with self.assertRaises(InvalidFilenameError):
            parse_filename("../atm__a__b.zip")


class DerivationTests(unittest.TestCase):
    def test_category_lookup(self):
        self.assertEqual(category_name_for("ATM"), "All The Mods")
        self.assertEqual(category_name_for("sf_5"), "SkyFactory")
        self.assertEqual(category_name_for("project_architect"), "Project Architect")
        self.assertEqual(category_name_for("homebrew"), "Other")

    def test_display_name_restores_acronyms(self):
        self.assertEqual(display_name_for("atm_sf_jei_run"), "ATM SF JEI Run")
        self.assertEqual(display_name_for("atm10_world"), "Atm10 World")

    def test_tags_follow_vocabulary_order(self):
        self.assertEqual(tags_for("stone_sky_magic_tech_create_atm.zip"),
                         ("modded", "engineering", "technology", "magic", "skyblock", "challenge"))
        self.assertEqual(tags_for("plain.zip"), ())

    def test_parsing_is_deterministic(self):
        name = "ftb__ftb_revelation__castle__3.zip"
        self.assertEqual(parse_filename(name), parse_filename(name))


if __name__ == "__main__":
    unittest.main()
