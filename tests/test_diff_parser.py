import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from prdiffreview.annotator import annotate
from prdiffreview.comments import index_comments
from prdiffreview.diff_parser import (
    OP_ADDED,
    OP_CONTEXT,
    OP_REMOVED,
    STATUS_ADDED,
    STATUS_BINARY,
    STATUS_DELETED,
    STATUS_MODIFIED,
    STATUS_RENAMED,
    normalize_diff_path,
    parse_diff,
    split_diff_lines,
)
from prdiffreview.errors import MalformedDiffError

SINGLE_FILE_DIFF = """diff --git a/a.go b/a.go
index 1111111..2222222 100644
--- a/a.go
+++ b/a.go
@@ -10,3 +10,4 @@ func main() {
 line10
+added11
 line11
 line12
"""

MULTI_FILE_DIFF = """diff --git a/new.txt b/new.txt
new file mode 100644
index 0000000..3333333
--- /dev/null
+++ b/new.txt
@@ -0,0 +1,2 @@
+hello
+world
\\ No newline at end of file
diff --git a/old.txt b/old.txt
deleted file mode 100644
index 4444444..0000000
--- a/old.txt
+++ /dev/null
@@ -1 +0,0 @@
-bye
diff --git a/src/before.py b/src/after.py
similarity index 90%
rename from src/before.py
rename to src/after.py
index 5555555..6666666 100644
--- a/src/before.py
+++ b/src/after.py
@@ -1,2 +1,2 @@
-x = 1
+x = 2
 y = 3
diff --git a/logo.png b/logo.png
index 7777777..8888888 100644
Binary files a/logo.png and b/logo.png differ
"""

BROKEN_THEN_GOOD_DIFF = """diff --git a/bad.txt b/bad.txt
--- a/bad.txt
+++ b/bad.txt
@@ -x +y @@
-a
+b
diff --git a/good.txt b/good.txt
--- a/good.txt
+++ b/good.txt
@@ -1 +1 @@
-a
+b
"""


class TestParseDiff(unittest.TestCase):
    def test_single_file_line_numbers(self):
        model = parse_diff(SINGLE_FILE_DIFF)
        self.assertEqual(model.changed_paths, ["a.go"])
        diff_file = model.files[0]
        self.assertEqual(diff_file.status, STATUS_MODIFIED)
        hunk = diff_file.hunks[0]
        self.assertEqual((hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count), (10, 3, 10, 4))
        self.assertEqual(hunk.section, "func main() {")
        self.assertEqual(
            [(line.op, line.old_line, line.new_line, line.text) for line in hunk.lines],
            [
                (OP_CONTEXT, 10, 10, "line10"),
                (OP_ADDED, None, 11, "added11"),
                (OP_CONTEXT, 11, 12, "line11"),
                (OP_CONTEXT, 12, 13, "line12"),
            ],
        )
        self.assertEqual(diff_file.additions, 1)
        self.assertEqual(diff_file.deletions, 0)

    def test_round_trip_reproduces_input_lines(self):
        for text in (SINGLE_FILE_DIFF, MULTI_FILE_DIFF):
            model = parse_diff(text)
            self.assertEqual(model.to_lines(), text.splitlines())
            self.assertEqual(model.warnings, ())

    def test_file_statuses(self):
        model = parse_diff(MULTI_FILE_DIFF)
        by_path = {diff_file.path: diff_file for diff_file in model.files}
        self.assertEqual(set(by_path), {"new.txt", "old.txt", "src/after.py", "logo.png"})

        added = by_path["new.txt"]
        self.assertEqual(added.status, STATUS_ADDED)
        self.assertIsNone(added.old_path)

        deleted = by_path["old.txt"]
        self.assertEqual(deleted.status, STATUS_DELETED)
        self.assertIsNone(deleted.new_path)
        self.assertEqual(deleted.hunks[0].lines[0].op, OP_REMOVED)

        renamed = by_path["src/after.py"]
        self.assertEqual(renamed.status, STATUS_RENAMED)
        self.assertEqual(renamed.old_path, "src/before.py")
        self.assertEqual(renamed.similarity, 90)
        self.assertEqual(renamed.paths, {"src/before.py", "src/after.py"})

        binary = by_path["logo.png"]
        self.assertEqual(binary.status, STATUS_BINARY)
        self.assertEqual(binary.hunks, ())

    def test_no_newline_marker_attaches_to_previous_line(self):
        model = parse_diff(MULTI_FILE_DIFF)
        last = model.files[0].hunks[0].lines[-1]
        self.assertEqual(last.text, "world")
        self.assertEqual(last.eof_marker, "No newline at end of file")

    def test_malformed_file_is_skipped_with_warning(self):
        model = parse_diff(BROKEN_THEN_GOOD_DIFF)
        self.assertEqual(model.changed_paths, ["good.txt"])
        self.assertEqual(len(model.warnings), 1)
        self.assertTrue(model.warnings[0].startswith("Skipped bad.txt:"))

    def test_strict_mode_propagates_malformed_file(self):
        with self.assertRaises(MalformedDiffError) as ctx:
            parse_diff(BROKEN_THEN_GOOD_DIFF, strict=True)
        self.assertEqual(ctx.exception.path, "bad.txt")

    def test_truncated_hunk_is_reported(self):
        text = "--- a/x.txt\n+++ b/x.txt\n@@ -1,3 +1,3 @@\n a\n"
        model = parse_diff(text)
        self.assertTrue(model.is_empty)
        self.assertIn("Hunk ended early", model.warnings[0])

    def test_empty_input_is_an_empty_model(self):
        self.assertTrue(parse_diff("").is_empty)
        self.assertTrue(parse_diff("\n\n").is_empty)

    def test_text_without_file_headers_raises(self):
        with self.assertRaises(MalformedDiffError):
            parse_diff("this is not\na diff\n")

    def test_plain_unified_diff_headers(self):
        text = "--- a.txt\t2024-01-01 00:00:00\n+++ b.txt\t2024-01-02 00:00:00\n@@ -1 +1 @@\n-a\n+b\n"
        model = parse_diff(text)
        diff_file = model.files[0]
        self.assertEqual((diff_file.old_path, diff_file.new_path), ("a.txt", "b.txt"))
        self.assertEqual(diff_file.status, STATUS_MODIFIED)
        self.assertEqual(model.to_lines(), text.splitlines())

    def test_blank_line_inside_hunk_is_context(self):
        text = "--- a/x.txt\n+++ b/x.txt\n@@ -1,3 +1,3 @@\n a\n\n c\n"
        lines = parse_diff(text).files[0].hunks[0].lines
        self.assertEqual([line.op for line in lines], [OP_CONTEXT] * 3)
        self.assertEqual(lines[1].text, "")
        self.assertEqual((lines[2].old_line, lines[2].new_line), (3, 3))

    def test_paths_with_spaces(self):
        text = "diff --git a/my file.txt b/my file.txt\n--- a/my file.txt\n+++ b/my file.txt\n@@ -1 +1 @@\n-a\n+b\n"
        self.assertEqual(parse_diff(text).changed_paths, ["my file.txt"])

    def test_stray_lines_after_file_are_warned(self):
        text = SINGLE_FILE_DIFF + "garbage line\n"
        model = parse_diff(text)
        self.assertEqual(model.changed_paths, ["a.go"])
        self.assertIn("unexpected line", model.warnings[0])

    def test_form_feed_stays_inside_its_line(self):
        text = "--- a/lib.py\n+++ b/lib.py\n@@ -1,2 +1,3 @@\n first\x0c\n+added\n last\n"
        model = parse_diff(text)
        self.assertEqual(model.warnings, ())
        lines = model.files[0].hunks[0].lines
        self.assertEqual(
            [(line.op, line.old_line, line.new_line, line.text) for line in lines],
            [
                (OP_CONTEXT, 1, 1, "first\x0c"),
                (OP_ADDED, None, 2, "added"),
                (OP_CONTEXT, 2, 3, "last"),
            ],
        )
        record = {
            "id": 1,
            "user": {"login": "alice"},
            "body": "why?",
            "created_at": "2024-01-01T00:00:00Z",
            "path": "lib.py",
            "side": "RIGHT",
            "line": 2,
        }
        annotated = annotate(model, index_comments([record]))
        item = annotated.files[0].hunks[0].lines[1]
        self.assertEqual(item.line.text, "added")
        self.assertEqual([thread.root.comment_id for thread in item.threads], [1])

    def test_carriage_returns_are_line_content(self):
        text = "diff --git a/w.txt b/w.txt\n--- a/w.txt\n+++ b/w.txt\n@@ -1,2 +1,2 @@\n-old\r\n+new\r\n keep\r\n"
        model = parse_diff(text)
        self.assertEqual(model.warnings, ())
        self.assertEqual(model.to_lines(), split_diff_lines(text))
        lines = model.files[0].hunks[0].lines
        self.assertEqual([line.text for line in lines], ["old\r", "new\r", "keep\r"])

    def test_split_diff_lines_only_breaks_on_newline(self):
        self.assertEqual(split_diff_lines("a\x0cb\r\nc d\n"), ["a\x0cb\r", "c d"])
        self.assertEqual(split_diff_lines(""), [])
        self.assertEqual(split_diff_lines("x\n\n"), ["x", ""])


class TestNormalizeDiffPath(unittest.TestCase):
    def test_prefixes_and_dev_null(self):
        self.assertEqual(normalize_diff_path("a/src/x.py"), "src/x.py")
        self.assertEqual(normalize_diff_path("b/src/x.py\t2024-01-01"), "src/x.py")
        self.assertIsNone(normalize_diff_path("/dev/null"))
        self.assertEqual(normalize_diff_path('"b/caf\\303\\251.txt"'), "café.txt")


if __name__ == "__main__":
    unittest.main()
