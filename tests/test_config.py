import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from prdiffreview.config import DEFAULT_CONFIG_NAME, ExportConfig, apply_overrides, load_export_config, resolve_config
from prdiffreview.errors import PRReviewError, UnsupportedFormatError


class TestExportConfig(unittest.TestCase):
    def test_load_export_table(self):
        with tempfile.TemporaryDirectory() as tempdir:
            path = Path(tempdir) / "review.toml"
            path.write_text(
                '[export]\noutput_dir = "reviews"\nformat = "md"\ncontext_lines = 5\nmax_workers = 2\nremote = "upstream"\n',
                encoding="utf-8",
            )
            config = load_export_config(path)
        self.assertEqual(
            config,
            ExportConfig(output_dir="reviews", format="md", context_lines=5, max_workers=2, remote="upstream"),
        )

    def test_missing_table_uses_defaults(self):
        with tempfile.TemporaryDirectory() as tempdir:
            path = Path(tempdir) / "review.toml"
            path.write_text("[other]\nkey = 1\n", encoding="utf-8")
            self.assertEqual(load_export_config(path), ExportConfig())

    def test_invalid_values_are_rejected(self):
        cases = {
            "bad_format": '[export]\nformat = "xml"\n',
            "bad_workers": "[export]\nmax_workers = 0\n",
            "bad_context": '[export]\ncontext_lines = "three"\n',
            "bad_toml": "[export\n",
        }
        with tempfile.TemporaryDirectory() as tempdir:
            for name, content in cases.items():
                path = Path(tempdir) / f"{name}.toml"
                path.write_text(content, encoding="utf-8")
                with self.subTest(name=name):
                    with self.assertRaises(PRReviewError):
                        load_export_config(path)

    def test_bad_format_is_unsupported_format_error(self):
        with tempfile.TemporaryDirectory() as tempdir:
            path = Path(tempdir) / "review.toml"
            path.write_text('[export]\nformat = "pdf"\n', encoding="utf-8")
            with self.assertRaises(UnsupportedFormatError):
                load_export_config(path)

    def test_explicit_missing_file_is_an_error(self):
        with self.assertRaises(PRReviewError):
            resolve_config("/nonexistent/prdiffreview.toml")

    def test_resolve_config_reads_working_directory_file(self):
        with tempfile.TemporaryDirectory() as tempdir:
            cwd = Path(tempdir)
            self.assertEqual(resolve_config(None, cwd=cwd), ExportConfig())
            (cwd / DEFAULT_CONFIG_NAME).write_text('[export]\nformat = "html"\n', encoding="utf-8")
            self.assertEqual(resolve_config(None, cwd=cwd).format, "html")

    def test_apply_overrides_skips_unset_values(self):
        config = apply_overrides(ExportConfig(format="md"), output_dir="out", format=None)
        self.assertEqual(config.output_dir, "out")
        self.assertEqual(config.format, "md")


if __name__ == "__main__":
    unittest.main()
