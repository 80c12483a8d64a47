# tests/test_unified_diff.py
import unittest

from applyflow.core.errors import PatchApplyError
from applyflow.core.unified_diff import apply_unified_diff, parse_patch

ORIGINAL = "".join(f"line {i}\n" for i in range(1, 11))


class TestParsePatch(unittest.TestCase):

    def test_headers_and_hunks(self):
        diff = (
            "diff --git a/x.py b/x.py\n"
            "index 123..456 100644\n"
            "--- a/x.py\n"
            "+++ b/x.py\n"
            "@@ -1,2 +1,2 @@\n"
            " a\n"
            "-b\n"
            "+c\n"
            "@@ -10 +10,2 @@\n"
            " z\n"
            "+zz\n"
        )
        patches = parse_patch(diff)
        self.assertEqual(len(patches), 1)
        self.assertEqual(patches[0].old_name, "a/x.py")
        self.assertEqual(len(patches[0].hunks), 2)
        second = patches[0].hunks[1]
        self.assertEqual((second.old_start, second.old_count, second.new_start, second.new_count), (10, 1, 10, 2))

    def test_multiple_files(self):
        diff = "--- a\n+++ a\n@@ -1 +1 @@\n-x\n+y\n--- b\n+++ b\n@@ -1 +1 @@\n-p\n+q\n"
        patches = parse_patch(diff)
        self.assertEqual([p.new_name for p in patches], ["a", "b"])


class TestApplyUnifiedDiff(unittest.TestCase):

    def test_simple_replacement(self):
        diff = "@@ -2,3 +2,3 @@\n line 2\n-line 3\n+LINE THREE\n line 4\n"
        result = apply_unified_diff(ORIGINAL, diff)
        self.assertIn("LINE THREE\n", result)
        self.assertNotIn("line 3\n", result)
        self.assertTrue(result.endswith("line 10\n"))

    def test_multiple_hunks_shift_offsets(self):
        diff = (
            "@@ -1,2 +1,3 @@\n line 1\n+inserted\n line 2\n"
            "@@ -8,2 +9,1 @@\n line 8\n-line 9\n"
        )
        result = apply_unified_diff(ORIGINAL, diff).split("\n")
        self.assertEqual(result[1], "inserted")
        self.assertNotIn("line 9", result)
        self.assertIn("line 10", result)

    def test_hunk_found_at_offset(self):
        shifted = "header\nheader\n" + ORIGINAL
        diff = "@@ -5,1 +5,1 @@\n-line 5\n+five\n"
        result = apply_unified_diff(shifted, diff)
        self.assertIn("five\n", result)
        self.assertNotIn("line 5\n", result)

    def test_hunk_without_line_numbers(self):
        diff = "@@ ... @@\n line 6\n-line 7\n+seven\n"
        result = apply_unified_diff(ORIGINAL, diff)
        self.assertIn("line 6\nseven\nline 8\n", result)

    def test_context_mismatch_raises(self):
        diff = "@@ -2,2 +2,2 @@\n line 2\n-not there\n+x\n"
        with self.assertRaises(PatchApplyError):
            apply_unified_diff(ORIGINAL, diff)

    def test_zero_hunks_raises(self):
        with self.assertRaises(PatchApplyError):
            apply_unified_diff(ORIGINAL, "--- a/x\n+++ b/x\n")

    def test_new_file_from_dev_null(self):
        diff = "--- /dev/null\n+++ b/new.txt\n@@ -0,0 +1,2 @@\n+hello\n+world\n"
        self.assertEqual(apply_unified_diff("", diff), "hello\nworld\n")

    def test_pure_insertion_appends_at_end_of_file(self):
        diff = "@@ -3,0 +4 @@\n+d\n"
        self.assertEqual(apply_unified_diff("a\nb\nc\n", diff), "a\nb\nc\nd\n")

    def test_pure_insertion_goes_after_the_anchor_line(self):
        diff = "@@ -1,0 +2 @@\n+X\n"
        self.assertEqual(apply_unified_diff("a\nb\nc\n", diff), "a\nX\nb\nc\n")

    def test_several_pure_insertions_track_offsets(self):
        diff = "@@ -1,0 +2 @@\n+X\n@@ -3,0 +5,2 @@\n+Y\n+Z\n"
        self.assertEqual(apply_unified_diff("a\nb\nc\n", diff), "a\nX\nb\nc\nY\nZ\n")

    def test_no_newline_at_end_of_file(self):
        diff = "@@ -1 +1 @@\n-old\n\\ No newline at end of file\n+new\n\\ No newline at end of file\n"
        self.assertEqual(apply_unified_diff("old", diff), "new")

    def test_adds_trailing_newline(self):
        diff = "@@ -1 +1 @@\n-old\n\\ No newline at end of file\n+new\n"
        self.assertEqual(apply_unified_diff("old", diff), "new\n")

    def test_blank_context_line_without_space(self):
        original = "a\n\nb\n"
        diff = "@@ -1,3 +1,3 @@\n a\n\n-b\n+B\n"
        self.assertEqual(apply_unified_diff(original, diff), "a\n\nB\n")

    def test_only_first_file_patch_is_applied(self):
        diff = "--- a\n+++ a\n@@ -1 +1 @@\n-line 1\n+first\n--- b\n+++ b\n@@ -1 +1 @@\n-line 2\n+second\n"
        result = apply_unified_diff(ORIGINAL, diff)
        self.assertTrue(result.startswith("first\nline 2\n"))
