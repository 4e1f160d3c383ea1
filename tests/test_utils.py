import unittest

from transferjob.errors import InvalidHostError
from transferjob.utils import normalize_host, sanitize_remote_filename


class HostNormalizationTest(unittest.TestCase):
    def test_url_input_keeps_only_host(self) -> None:
        self.assertEqual(normalize_host("HTTPS://Example.COM:443/x"), "example.com")
        self.assertEqual(normalize_host("sftp://files.example.com/upload?x=1#top"), "files.example.com")

    def test_trailing_dot_and_whitespace(self) -> None:
        self.assertEqual(normalize_host("example.com."), "example.com")
        self.assertEqual(normalize_host("  Example.com \n"), "example.com")

    def test_raw_host_with_path(self) -> None:
        self.assertEqual(normalize_host("sftp.example.com/some/dir"), "sftp.example.com")

    def test_invisible_format_characters_removed(self) -> None:
        self.assertEqual(normalize_host("exa\u200bmple.com\ufeff"), "example.com")

    def test_non_ascii_letter_rejected_with_code_point(self) -> None:
        with self.assertRaises(InvalidHostError) as ctx:
            normalize_host("ex\u00e4mple.com")
        self.assertIn("U+00E4", str(ctx.exception))

    def test_port_in_raw_host_rejected(self) -> None:
        with self.assertRaises(InvalidHostError) as ctx:
            normalize_host("example.com:22")
        self.assertIn("U+003A", str(ctx.exception))

    def test_empty_host_rejected(self) -> None:
        with self.assertRaises(InvalidHostError):
            normalize_host("   ")
        with self.assertRaises(InvalidHostError):
            normalize_host("...")


class FilenameSanitizationTest(unittest.TestCase):
    def test_separators_replaced(self) -> None:
        self.assertEqual(sanitize_remote_filename("a/b\\c:d.zip"), "a_b_c_d.zip")

    def test_leading_dots_stripped(self) -> None:
        self.assertEqual(sanitize_remote_filename("..hidden.txt"), "hidden.txt")

    def test_default_name(self) -> None:
        self.assertEqual(sanitize_remote_filename("   "), "upload.bin")
        self.assertEqual(sanitize_remote_filename("..."), "upload.bin")

    def test_plain_name_untouched(self) -> None:
        self.assertEqual(sanitize_remote_filename(" photos 2025.zip "), "photos 2025.zip")


if __name__ == "__main__":
    unittest.main()
