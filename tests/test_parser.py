# tests/test_parser.py
import unittest

import pytest

from applyflow.core.models import (
    ApplyStatus, ContextHash, EditMode, FileDelete, FileEdit, FileRequest, FileWrite,
    Message, Plan, Timestamp,
)
from applyflow.core.parser import (
    EMPTY_RESPONSE_ERROR, NO_OPERATIONS_ERROR, extract_response_block, normalize_path,
    parse, parse_response, process_document,
)

FULL_DOCUMENT = """<context-timestamp>2024-05-01T10:00:00Z</context-timestamp>
<context-hash>abc123</context-hash>
<plan>
Step 1
</plan>
<message purpose="commit">feat: add greeting</message>
<file-write path="src/a.py" reason="new module">
print('a')
</file-write>
<file-replace-block path='src/b.py'>
<<<<<<< SEARCH
old line
=======
new line
>>>>>>> REPLACE
</file-replace-block>
<file-diff path="src/c.py">
@@ -1 +1 @@
-x
+y
</file-diff>
<file-delete path="old.txt" reason="unused" />
<file-request path="src/d.py"/>
"""


class TestParseVocabulary(unittest.TestCase):
    """每个合法标签恰好产生一个对应的操作"""

    def setUp(self):
        self.ops = parse(FULL_DOCUMENT)

    def test_operation_count_and_order(self):
        kinds = [op.kind for op in self.ops]
        self.assertEqual(
            kinds,
            ["timestamp", "context_hash", "plan", "message", "write", "edit", "edit", "delete", "request"],
        )

    def test_informational_tags(self):
        self.assertEqual(self.ops[0], Timestamp(text="2024-05-01T10:00:00Z"))
        self.assertEqual(self.ops[1], ContextHash(text="abc123"))
        self.assertEqual(self.ops[2], Plan(text="Step 1"))
        self.assertEqual(self.ops[3], Message(text="feat: add greeting", purpose="commit"))

    def test_file_write_preserves_content(self):
        self.assertEqual(self.ops[4], FileWrite(path="src/a.py", content="print('a')\n", reason="new module"))

    def test_replace_block_single_quoted_path(self):
        edit = self.ops[5]
        self.assertIsInstance(edit, FileEdit)
        self.assertEqual(edit.path, "src/b.py")
        self.assertEqual(edit.mode, EditMode.SEARCH_REPLACE)
        self.assertEqual(edit.search_text, "old line")
        self.assertEqual(edit.replace_text, "new line")

    def test_file_diff(self):
        edit = self.ops[6]
        self.assertEqual(edit.mode, EditMode.UNIFIED_DIFF)
        self.assertEqual(edit.diff_content, "@@ -1 +1 @@\n-x\n+y\n")
        self.assertIsNone(edit.search_text)

    def test_self_closing_tags(self):
        self.assertEqual(self.ops[7], FileDelete(path="old.txt", reason="unused"))
        self.assertEqual(self.ops[8], FileRequest(path="src/d.py"))


def test_single_file_write_in_response():
    ops, error = parse_response('<response><file-write path="a.txt">hello</file-write></response>')
    assert error is None
    assert ops == [FileWrite(path="a.txt", content="hello")]


def test_unclosed_tag_produces_nothing():
    assert parse('<file-write path="x">content') == []


@pytest.mark.parametrize("document", [
    "",
    "<",
    ">",
    "</>",
    "<a",
    "<<<>>>",
    "< plan>x</plan>",
    "<=>",
    "<plan",
    "<file-write path='a'",
    "<file-write path=\"a",
    "<file-delete path=\"x\"",
    "<plan>a <plan>b</plan> c</plan>",
    "</file-write></plan>text",
    "plain text without tags",
    "a < b and c > d",
    "<file-write path=a/b.txt>x</file-write>",
    "<message purpose=>hi</message>",
    "\x00<\x00>\x00",
])
def test_parse_is_total(document):
    result = parse(document)
    assert isinstance(result, list)


def test_leading_newline_stripped_once():
    ops = parse('<file-write path="a">\n\nx</file-write>')
    assert ops[0].content == "\nx"
    ops = parse('<file-write path="a">\r\nx\r\n</file-write>')
    assert ops[0].content == "x\r\n"


def test_unknown_and_wrong_case_tags_are_dropped():
    ops = parse("<foo>bar</foo><PLAN>x</PLAN><plan>kept</plan>")
    assert ops == [Plan(text="kept")]


def test_malformed_attribute_skipped_individually():
    ops = parse('<file-write reason=oops path="a.txt">x</file-write>')
    assert ops == [FileWrite(path="a.txt", content="x")]

    ops = parse('<file-write bogus path="b.txt">y</file-write>')
    assert ops == [FileWrite(path="b.txt", content="y")]


def test_file_tags_without_path_are_dropped():
    ops = parse('<file-delete /><file-write>x</file-write><file-request path=""/><plan>p</plan>')
    assert ops == [Plan(text="p")]


def test_replace_block_without_markers_is_dropped():
    ops = parse('<file-replace-block path="a.py">just some text</file-replace-block>')
    assert ops == []


def test_unclosed_tag_does_not_swallow_following_tags():
    ops = parse('<plan>never closed\n<file-delete path="a.txt" />')
    assert ops == [FileDelete(path="a.txt")]


def test_path_normalization():
    assert normalize_path(".\\src\\a.py") == "src/a.py"
    assert normalize_path("./././b/c.txt") == "b/c.txt"
    ops = parse('<file-write path=".\\src\\a.py">x</file-write>')
    assert ops[0].path == "src/a.py"


def test_extract_response_block_uses_last_closing_tag():
    document = '<response><file-write path="a.md">see </response> tag</file-write></response>'
    block = extract_response_block(document)
    assert block == '<file-write path="a.md">see </response> tag</file-write>'
    ops, error = parse_response(document)
    assert error is None
    assert ops[0].content == "see </response> tag"


def test_extract_response_block_with_attributes_and_preamble():
    document = 'Sure!\n<Response version="1"><plan>p</plan></response>\nBye'
    assert extract_response_block(document) == "<plan>p</plan>"


def test_extract_response_block_without_tags_returns_input():
    assert extract_response_block("<plan>p</plan>") == "<plan>p</plan>"
    assert extract_response_block("</response><response>") == "</response><response>"


def test_parse_response_errors():
    assert parse_response("<response>   </response>") == ([], EMPTY_RESPONSE_ERROR)
    assert parse_response("<response>just prose</response>") == ([], NO_OPERATIONS_ERROR)
    assert parse_response("") == ([], None)


def test_process_document_assigns_indexes():
    batch = process_document(FULL_DOCUMENT, number=3)
    assert batch.number == 3
    assert batch.parse_error is None
    assert [item.index for item in batch.items] == list(range(9))
    assert all(item.status is ApplyStatus.PENDING_VALIDATION for item in batch.items)
    assert len(batch.document_checksum) == 64
    assert batch.raw_document == FULL_DOCUMENT


def test_process_document_with_parse_error():
    batch = process_document("<response></response>", number=1, batch_id="fixed")
    assert batch.batch_id == "fixed"
    assert batch.items == []
    assert batch.parse_error == EMPTY_RESPONSE_ERROR
    assert batch.summary == "Parse Error"
