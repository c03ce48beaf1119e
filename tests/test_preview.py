import pytest
from unittest.mock import MagicMock
from patchcore import (
    ChangeAction, ChangeOperation, FileChange, NOT_FOUND_PLACEHOLDER, PathNotFoundError,
    SearchNotFoundError, compute_new_content, preview_changes, preview_from_reader
)
from patchcore.preview import apply_operations
from tests.conftest import create, delete, modify, rewrite

class TestPreviewActions:
    def test_create(self):
        preview = preview_changes([create("new.txt", "hello")], {})[0]
        assert preview.original == ""
        assert preview.modified == "hello"
        assert preview.has_changes is True

    def test_delete_existing(self):
        preview = preview_changes([delete("a.txt")], {"a.txt": "data"})[0]
        assert preview.original == "data"
        assert preview.modified == ""
        assert preview.has_changes is True

    def test_delete_missing_uses_placeholder(self):
        preview = preview_changes([delete("a.txt")], {})[0]
        assert preview.original == NOT_FOUND_PLACEHOLDER

    def test_rewrite_identical_has_no_changes(self):
        preview = preview_changes([rewrite("a.txt", "same")], {"a.txt": "same"})[0]
        assert preview.has_changes is False

    def test_rewrite_missing_file(self):
        preview = preview_changes([rewrite("a.txt", "x")], {})[0]
        assert preview.original == NOT_FOUND_PLACEHOLDER
        assert preview.modified == "x"
        assert preview.has_changes is True

    def test_modify_first_occurrence_only(self):
        preview = preview_changes([modify("x.py", ("foo", "bar"))], {"x.py": "foo baz foo"})[0]
        assert preview.modified == "bar baz foo"
        assert preview.has_changes is True
        assert preview.unmatched == ()

    def test_modify_operations_apply_in_order(self):
        change = modify("x.py", ("a", "b"), ("b", "c"))
        assert preview_changes([change], {"x.py": "a"})[0].modified == "c"

    def test_modify_missing_search_is_noop(self):
        change = FileChange("x.py", ChangeAction.MODIFY, (
            ChangeOperation(content="new", search="absent", description="Swap helper"),
            ChangeOperation(content="2", search="1"),
        ))
        preview = preview_changes([change], {"x.py": "v = 1"})[0]
        assert preview.modified == "v = 2"
        assert preview.unmatched == ("Swap helper",)

    def test_modify_all_unmatched_has_no_changes(self):
        preview = preview_changes([modify("x.py", ("absent\nsecond line", "new"))], {"x.py": "v = 1"})[0]
        assert preview.has_changes is False
        assert preview.unmatched == ("absent",)

    def test_modify_missing_file(self):
        preview = preview_changes([modify("x.py", ("a", "b"))], {})[0]
        assert preview.original == NOT_FOUND_PLACEHOLDER
        assert preview.modified == NOT_FOUND_PLACEHOLDER
        assert preview.has_changes is False
        assert preview.error == "File does not exist: x.py"

    def test_strict_partial_match_is_an_error(self):
        change = modify("x.py", ("one", "1"), ("absent", "x"))

        forgiving = preview_changes([change], {"x.py": "one two"})[0]
        strict = preview_changes([change], {"x.py": "one two"}, strict=True)[0]

        assert forgiving.modified == "1 two"
        assert forgiving.error is None
        assert strict.modified == strict.original == "one two"
        assert strict.has_changes is False
        assert strict.unmatched == ("absent",)
        assert "Search text not found" in strict.error

    def test_strict_full_match_has_no_error(self):
        preview = preview_changes([modify("x.py", ("one", "1"))], {"x.py": "one"}, strict=True)[0]
        assert preview.modified == "1"
        assert preview.error is None

class TestPreviewProperties:
    def test_idempotent_and_inputs_untouched(self):
        changes = [modify("a.txt", ("1", "2")), delete("b.txt"), create("c.txt", "c")]
        contents = {"a.txt": "1", "b.txt": "b"}
        snapshot = dict(contents)

        first = preview_changes(changes, contents)
        second = preview_changes(changes, contents)

        assert first == second
        assert contents == snapshot

    def test_duplicate_paths_see_earlier_entries(self):
        changes = [create("a.txt", "one"), modify("a.txt", ("one", "two"))]
        previews = preview_changes(changes, {})
        assert previews[1].original == "one"
        assert previews[1].modified == "two"

    def test_spellings_of_one_path_share_content(self):
        changes = [rewrite("./a.txt", "one"), modify("a.txt", ("one", "two"))]
        previews = preview_changes(changes, {"sub/../a.txt": "zero"})
        assert previews[0].original == "zero"
        assert previews[1].original == "one"
        assert previews[1].modified == "two"

    def test_read_errors_mark_every_change(self):
        changes = [rewrite("a.txt", "x"), modify("./a.txt", ("x", "y"))]
        previews = preview_changes(changes, {}, read_errors={"a.txt": "Error reading file: bad bytes"})
        assert [p.error for p in previews] == ["Error reading file: bad bytes"] * 2
        assert not any(p.has_changes for p in previews)

    def test_delete_then_modify_sees_missing_file(self):
        previews = preview_changes([delete("a.txt"), modify("a.txt", ("x", "y"))], {"a.txt": "x"})
        assert previews[1].original == NOT_FOUND_PLACEHOLDER

    def test_unified_diff(self):
        preview = preview_changes([modify("x.py", ("b", "B"))], {"x.py": "a\nb\nc"})[0]
        diff = preview.unified_diff()
        assert diff.startswith("--- a/x.py\n+++ b/x.py\n")
        assert "-b\n+B\n" in diff
        assert "\\ No newline at end of file" in diff

class TestComputeNewContent:
    def test_delete_returns_none(self):
        assert compute_new_content(delete("a"), "x") is None

    def test_create_ignores_current(self):
        assert compute_new_content(create("a", "new"), "old") == "new"

    def test_modify_missing_file_raises(self):
        with pytest.raises(PathNotFoundError):
            compute_new_content(modify("a", ("x", "y")), None)

    def test_strict_raises_on_unmatched(self):
        with pytest.raises(SearchNotFoundError) as exc_info:
            compute_new_content(modify("a", ("x", "y"), ("zzz", "q")), "x", strict=True)
        assert exc_info.value.search == "zzz"

    def test_forgiving_by_default(self):
        assert compute_new_content(modify("a", ("x", "y"), ("zzz", "q")), "x") == "y"

    @pytest.mark.parametrize("original", [
        "def f():\n    return 1\n\ndef g():\n    return 2\n",
        "alpha beta gamma",
        "x\r\ny\r\n",
    ])
    def test_matches_preview(self, original):
        first_line = original.splitlines()[0]
        change = modify("f", (first_line, first_line.upper()))
        assert compute_new_content(change, original) == preview_changes([change], {"f": original})[0].modified

    def test_apply_operations_reports_unmatched(self):
        ops = [ChangeOperation(content="b", search="a"), ChangeOperation(content="d", search="c")]
        content, unmatched = apply_operations("a", ops)
        assert content == "b"
        assert unmatched == [ops[1]]

class TestPreviewFromReader:
    def test_reads_each_path_once_and_skips_missing(self):
        def fake_read(path):
            if path == "a.txt":
                return "1"
            raise PathNotFoundError(f"File does not exist: {path}")

        reader = MagicMock()
        reader.read_file.side_effect = fake_read

        changes = [modify("a.txt", ("1", "2")), modify("a.txt", ("2", "3")), rewrite("b.txt", "b"), create("c.txt", "c")]
        previews = preview_from_reader(changes, reader)

        assert [p.modified for p in previews] == ["2", "3", "b", "c"]
        assert previews[2].original == NOT_FOUND_PLACEHOLDER
        read_paths = [call.args[0] for call in reader.read_file.call_args_list]
        assert read_paths == ["a.txt", "b.txt", "c.txt"]

    def test_with_local_store(self, store, temp_cwd):
        (temp_cwd / "a.txt").write_text("hello world")
        preview = preview_from_reader([modify("a.txt", ("world", "there"))], store)[0]
        assert preview.modified == "hello there"
        assert (temp_cwd / "a.txt").read_text() == "hello world"
