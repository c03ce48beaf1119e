import pytest
from patchcore import (
    ChangeAction, ChangeOperation, FileChange, InvalidActionError,
    MalformedDocumentError, ParseError, parse_change_document, serialize_change_document
)
from patchcore.parsing import iter_file_blocks
from pattern import change_document_example
from tests.conftest import change_block, file_block

class TestChangeDocumentParsing:
    def test_parse_create(self):
        doc = file_block("hello.py", "create", change_block('print("hi")\n\nprint("bye")'))
        changes = parse_change_document(doc)

        assert len(changes) == 1
        change = changes[0]
        assert change.path == "hello.py"
        assert change.action is ChangeAction.CREATE
        assert len(change.operations) == 1
        assert change.operations[0].content == 'print("hi")\n\nprint("bye")'
        assert change.operations[0].search is None

    def test_parse_modify_multiple_operations_in_order(self):
        doc = file_block(
            "app.py", "modify",
            change_block("def new():", search="def old():", description="Rename"),
            change_block("return 2", search="return 1"),
        )
        change = parse_change_document(doc)[0]

        assert change.action is ChangeAction.MODIFY
        assert [op.search for op in change.operations] == ["def old():", "return 1"]
        assert [op.content for op in change.operations] == ["def new():", "return 2"]
        assert change.operations[0].description == "Rename"
        assert change.operations[1].description == ""

    def test_parse_delete_self_closing(self):
        changes = parse_change_document('<file path="old.txt" action="delete" />')
        assert changes == [FileChange("old.txt", ChangeAction.DELETE)]

    def test_delete_drops_operations(self):
        doc = file_block("old.txt", "delete", change_block("ignored"))
        assert parse_change_document(doc)[0].operations == ()

    def test_prose_and_plan_ignored(self):
        doc = (
            "Sure! Here is my plan.\n<Plan>Touch a.txt, mention <content> loosely</Plan>\n"
            + file_block("a.txt", "rewrite", change_block("new"))
            + "\nLet me know if you need more."
        )
        changes = parse_change_document(doc)
        assert len(changes) == 1
        assert changes[0].content == "new"

    def test_order_and_duplicate_paths_preserved(self):
        doc = "\n".join([
            file_block("b.txt", "create", change_block("1")),
            file_block("a.txt", "create", change_block("2")),
            file_block("b.txt", "modify", change_block("3", search="1")),
        ])
        changes = parse_change_document(doc)
        assert [(c.path, c.action) for c in changes] == [
            ("b.txt", ChangeAction.CREATE),
            ("a.txt", ChangeAction.CREATE),
            ("b.txt", ChangeAction.MODIFY),
        ]

    def test_action_case_insensitive(self):
        doc = file_block("a.txt", "ReWrite", change_block("x"))
        assert parse_change_document(doc)[0].action is ChangeAction.REWRITE

    def test_missing_action_defaults_to_modify(self):
        doc = '<file path="a.txt">\n' + change_block("y", search="x") + "\n</file>"
        assert parse_change_document(doc)[0].action is ChangeAction.MODIFY

    def test_attribute_unescaped(self):
        doc = file_block("docs/a&amp;b.md", "create", change_block("x"))
        assert parse_change_document(doc)[0].path == "docs/a&b.md"

    def test_single_quoted_attributes(self):
        doc = "<file path='a.txt' action='create'>\n" + change_block("x") + "\n</file>"
        assert parse_change_document(doc)[0].path == "a.txt"

    def test_empty_document(self):
        assert parse_change_document("No changes needed.") == []

class TestBodies:
    def test_framed_body_is_verbatim(self):
        body = "    indented()\n\n  trailing spaces  "
        doc = file_block("a.py", "create", change_block(body))
        assert parse_change_document(doc)[0].content == body

    def test_tags_inside_frame_do_not_confuse_parser(self):
        body = 'html = "<file path=\\"x\\"></file><change></change>"\n</content>'
        doc = file_block("a.py", "create", change_block(body))
        changes = parse_change_document(doc)
        assert len(changes) == 1
        assert changes[0].content == body

    def test_empty_frame(self):
        doc = file_block("empty.txt", "create", change_block(""))
        assert parse_change_document(doc)[0].content == ""

    def test_self_closing_content_is_empty(self):
        doc = file_block("empty.txt", "create", "<change><content/></change>")
        assert parse_change_document(doc)[0].content == ""

    def test_unframed_body_is_stripped(self):
        doc = (
            '<file path="a.txt" action="modify"><change>'
            "<search>\n  old line  \n</search><content>  new line\n</content>"
            "</change></file>"
        )
        op = parse_change_document(doc)[0].operations[0]
        assert op.search == "old line"
        assert op.content == "new line"

    def test_crlf_frame(self):
        doc = '<file path="a.txt" action="create">\r\n<change>\r\n<content>\r\n===\r\nline1\r\nline2\r\n===\r\n</content>\r\n</change>\r\n</file>'
        assert parse_change_document(doc)[0].content == "line1\r\nline2"

    def test_indented_fence_lines(self):
        doc = (
            '<file path="a.txt" action="create">\n  <change>\n    <content>\n'
            "    ===\nbody\n    ===\n    </content>\n  </change>\n</file>"
        )
        assert parse_change_document(doc)[0].content == "body"

class TestValidation:
    def test_invalid_action(self):
        doc = file_block("a.txt", "append", change_block("x"))
        with pytest.raises(InvalidActionError) as exc_info:
            parse_change_document(doc)
        assert exc_info.value.path == "a.txt"
        assert exc_info.value.action == "append"
        assert "Invalid action 'append'" in str(exc_info.value)

    def test_invalid_action_aborts_whole_document(self):
        doc = file_block("ok.txt", "create", change_block("x")) + file_block("bad.txt", "merge", change_block("y"))
        with pytest.raises(ParseError):
            parse_change_document(doc)

    def test_missing_path(self):
        with pytest.raises(MalformedDocumentError):
            parse_change_document(file_block("", "create", change_block("x")))

    def test_change_without_content(self):
        doc = file_block("a.txt", "modify", "<change><search>x</search></change>")
        with pytest.raises(MalformedDocumentError, match="missing its <content>"):
            parse_change_document(doc)

    @pytest.mark.parametrize("action", ["create", "rewrite"])
    def test_full_content_actions_need_exactly_one_change(self, action):
        with pytest.raises(MalformedDocumentError, match="exactly one change"):
            parse_change_document(file_block("a.txt", action))
        with pytest.raises(MalformedDocumentError, match="found 2"):
            parse_change_document(file_block("a.txt", action, change_block("1"), change_block("2")))

    def test_search_on_create_is_dropped(self):
        doc = file_block("a.txt", "create", change_block("x", search="ignored"))
        assert parse_change_document(doc)[0].operations[0].search is None

    def test_modify_without_changes(self):
        with pytest.raises(MalformedDocumentError, match="at least one change"):
            parse_change_document(file_block("a.txt", "modify"))

    def test_modify_without_search(self):
        doc = file_block("a.txt", "modify", change_block("x", search="y"), change_block("z"))
        with pytest.raises(MalformedDocumentError, match="#2 has no search"):
            parse_change_document(doc)

    def test_modify_with_empty_search(self):
        doc = file_block("a.txt", "modify", change_block("x", search=""))
        with pytest.raises(MalformedDocumentError):
            parse_change_document(doc)

    def test_unclosed_file(self):
        doc = '<file path="a.txt" action="create">\n' + change_block("x")
        with pytest.raises(MalformedDocumentError, match="Unclosed <file>"):
            parse_change_document(doc)

    def test_nested_file(self):
        doc = '<file path="a.txt" action="create">\n' + file_block("b.txt", "create", change_block("x"))
        with pytest.raises(MalformedDocumentError):
            parse_change_document(doc)

    def test_unclosed_change(self):
        doc = '<file path="a.txt" action="create"><change><content>x</content></file>'
        with pytest.raises(MalformedDocumentError, match="Unclosed <change>"):
            parse_change_document(doc)

    def test_unclosed_content(self):
        doc = '<file path="a.txt" action="create"><change><content>\n===\nx\n===\n'
        with pytest.raises(MalformedDocumentError, match="Unclosed <content>"):
            parse_change_document(doc)

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_change_document(file_block("a.txt", "bogus", change_block("x")))

class TestIterAndSerialize:
    def test_iter_file_blocks_does_not_validate(self):
        blocks = list(iter_file_blocks(file_block("a.txt", "bogus", change_block("x"))))
        assert blocks[0].action == "bogus"
        assert blocks[0].operations[0].content == "x"

    def test_serialize_reparses_to_same_changes(self):
        changes = [
            FileChange("src/a&b.py", ChangeAction.CREATE, (ChangeOperation(content="x = 1\n<tag>"),)),
            FileChange("b.py", ChangeAction.MODIFY, (
                ChangeOperation(content="new", search="  old", description="Swap"),
            )),
            FileChange("gone.txt", ChangeAction.DELETE),
        ]
        assert parse_change_document(serialize_change_document(changes)) == changes

    def test_delete_serialized_self_closing(self):
        text = serialize_change_document([FileChange("x", ChangeAction.DELETE)])
        assert text.strip() == '<file path="x" action="delete" />'

    def test_instructions_example_parses(self):
        changes = parse_change_document(change_document_example)
        assert [c.action for c in changes] == [ChangeAction.MODIFY, ChangeAction.CREATE, ChangeAction.DELETE]
        assert changes[0].operations[0].search == '    print("hello")'
        assert changes[1].content == "# Notes"
