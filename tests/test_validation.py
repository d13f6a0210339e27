import unittest

from api.app.validation import sanitize_filename, strip_extension, validate_filename


class ValidateFilenameTests(unittest.TestCase):
    def test_accepts_allowed_extensions(self):
        for name in (
            "atm__all_the_mods_9__my_world__1.0.43.tar.xz",
            "world.zip",
            "world.rar",
            "world.7z",
            "World-Backup_2.ZIP",
            "world.TAR.XZ",
        ):
            with self.subTest(name=name):
                self.assertTrue(validate_filename(name))

    def test_rejects_traversal(self):
        for name in ("..evil.zip", "a..b.zip", "../etc/passwd.zip", "world.zip.."):
            with self.subTest(name=name):
                self.assertFalse(validate_filename(name))

    def test_rejects_absolute_paths_and_separators(self):
        for name in ("/world.zip", "\\world.zip", "dir/world.zip", "dir\\world.zip"):
            with self.subTest(name=name):
                self.assertFalse(validate_filename(name))

    def test_rejects_other_extensions(self):
        # .xz alone is not .tar.xz
        for name in ("world.xz", "world.tar.gz", "world.txt", "world", "world.zipx", "zip"):
            with self.subTest(name=name):
                self.assertFalse(validate_filename(name))

    def test_rejects_unsafe_characters(self):
        for name in ("my world.zip", "world$.zip", "wörld.zip", "world\x00.zip", "world\n.zip", "a;b.7z"):
            with self.subTest(name=name):
                self.assertFalse(validate_filename(name))

    def test_rejects_empty_and_overlong(self):
        self.assertFalse(validate_filename(""))
        self.assertFalse(validate_filename("a" * 252 + ".zip"))
        self.assertTrue(validate_filename("a" * 251 + ".zip"))


class HelperTests(unittest.TestCase):
    def test_strip_extension_handles_compound_suffix(self):
        self.assertEqual(strip_extension("a__b__c.tar.xz"), "a__b__c")
        self.assertEqual(strip_extension("World.ZIP"), "World")
        self.assertEqual(strip_extension("notes.txt"), "notes.txt")

    def test_sanitize_filename(self):
        self.assertEqual(sanitize_filename('we"ird name;.zip'), "we_ird_name_.zip")
        self.assertEqual(sanitize_filename("clean-name_1.tar.xz"), "clean-name_1.tar.xz")


if __name__ == "__main__":
    unittest.main()
