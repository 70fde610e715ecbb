"""Tests for opsctl.store: markdown records, queries and validation."""

from pathlib import Path

import pytest

from opsctl.errors import LockHeld, NotFound, StoreError
from opsctl.store import Collection, escape_expr, open_collection, parse_where


class TestParseWhere:
    def test_single_clause(self) -> None:
        assert parse_where('id == "triage-issue"') == [("id", "triage-issue")]

    def test_conjunction(self) -> None:
        assert parse_where('kind == "issue" && priority == "high"') == [("kind", "issue"), ("priority", "high")]

    def test_escaped_literal_round_trips(self) -> None:
        value = 'say "hi" \\ bye'
        assert parse_where(f'title == "{escape_expr(value)}"') == [("title", value)]

    @pytest.mark.parametrize("where", ["id = 'x'", 'id == "x" || a == "b"', 'id == "x" &&'])
    def test_unsupported(self, where: str) -> None:
        with pytest.raises(StoreError, match="Unsupported where clause"):
            parse_where(where)


class TestCollection:
    def test_create_and_read(self, tmp_path: Path) -> None:
        collection = Collection(tmp_path)
        collection.create("task", "tasks/a.md", {"title": "A", "owner": None}, "Do the thing.\n")
        record = collection.read("tasks/a.md")
        assert record.frontmatter == {"type": "task", "title": "A"}
        assert record.body.strip() == "Do the thing."

    def test_create_refuses_existing(self, tmp_path: Path) -> None:
        collection = Collection(tmp_path)
        collection.create("task", "tasks/a.md", {"title": "A"})
        with pytest.raises(StoreError, match="already exists"):
            collection.create("task", "tasks/a.md", {"title": "B"})
        collection.create("task", "tasks/a.md", {"title": "B"}, overwrite=True)
        assert collection.read("tasks/a.md").frontmatter["title"] == "B"

    def test_read_missing(self, tmp_path: Path) -> None:
        with pytest.raises(NotFound):
            Collection(tmp_path).read("items/issue-1.md")

    def test_path_escape_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(StoreError, match="escapes"):
            Collection(tmp_path / "store").read("../outside.md")

    def test_update_merges_and_removes(self, tmp_path: Path) -> None:
        collection = Collection(tmp_path)
        collection.create("item_state", "items/issue-1.md", {"a": 1, "b": 2}, "notes\n")
        collection.update("items/issue-1.md", {"b": None, "c": [1, 2]})
        record = collection.read("items/issue-1.md")
        assert record.frontmatter == {"type": "item_state", "a": 1, "c": [1, 2]}
        assert record.body.strip() == "notes"

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        collection = Collection(tmp_path)
        collection.create("task", "tasks/a.md", {"title": "A"})
        collection.update("tasks/a.md", {"title": "B"})
        assert [p.name for p in (tmp_path / "tasks").iterdir()] == ["a.md"]

    def test_query_filters_types_and_where(self, tmp_path: Path) -> None:
        collection = Collection(tmp_path)
        collection.create("item_state", "items/issue-1.md", {"kind": "issue", "priority": "high"})
        collection.create("item_state", "items/issue-2.md", {"kind": "issue", "priority": "low"})
        collection.create("task", "tasks/a.md", {"priority": "high"})
        rows = collection.query(["item_state"], where='priority == "high"')
        assert [r.path for r in rows] == ["items/issue-1.md"]

    def test_query_compares_non_strings_as_text(self, tmp_path: Path) -> None:
        collection = Collection(tmp_path)
        collection.create("item_state", "items/issue-1.md", {"number": 1, "active": True})
        assert collection.query(["item_state"], where='number == "1" && active == "true"')

    def test_query_order_limit_and_body(self, tmp_path: Path) -> None:
        collection = Collection(tmp_path)
        for name, created in (("a", "2024-01-02"), ("b", "2024-01-03"), ("c", "2024-01-01")):
            collection.create("handoff", f"handoffs/{name}.md", {"created_at": created}, f"body {name}\n")
        rows = collection.query(["handoff"], order_by=[("created_at", "desc")], limit=2)
        assert [r.path for r in rows] == ["handoffs/b.md", "handoffs/a.md"]
        assert rows[0].body == ""
        with_body = collection.query(["handoff"], order_by=[("created_at", "asc")], limit=1, include_body=True)
        assert with_body[0].body.strip() == "body c"

    def test_query_skips_hidden_and_type_dirs(self, tmp_path: Path) -> None:
        collection = Collection(tmp_path)
        collection.create("task", "_types/task.md", {"title": "schema"})
        collection.create("task", ".cache/x.md", {"title": "hidden"})
        collection.create("task", "tasks/a.md", {"title": "A"})
        assert [r.path for r in collection.query(["task"])] == ["tasks/a.md"]

    def test_validate_reports_duplicates_and_bad_commands(self, tmp_path: Path) -> None:
        collection = Collection(tmp_path)
        collection.create("command", "commands/a.md", {"id": "dup", "name": "A"})
        collection.create("command", "commands/b.md", {"id": "dup", "name": "B"})
        collection.create("command", "commands/c.md", {"id": "bad", "name": "C", "cli_type": "gemini"})
        (tmp_path / "notes.md").write_text("no frontmatter here\n")
        issues = collection.validate()
        codes = {(i.path, i.code) for i in issues}
        assert ("commands/b.md", "duplicate_id") in codes
        assert any(i.path == "commands/c.md" and i.field == "cli_type" for i in issues)
        assert all(i.path != "notes.md" for i in issues)

    def test_validate_reports_unreadable_yaml(self, tmp_path: Path) -> None:
        (tmp_path / "commands").mkdir()
        (tmp_path / "commands" / "x.md").write_text("---\nid: [unclosed\n---\nbody\n")
        issues = Collection(tmp_path).validate()
        assert [i.code for i in issues] == ["unreadable"]


class TestOpenCollection:
    def test_missing_root(self, tmp_path: Path) -> None:
        with pytest.raises(NotFound, match="ops init"):
            with open_collection(tmp_path / ".ops"):
                pass

    def test_holds_lock_for_session(self, ops_dir: Path) -> None:
        with open_collection(ops_dir) as collection:
            assert (ops_dir / ".lock").exists()
            assert collection.root == ops_dir.resolve()
            with pytest.raises(LockHeld):
                with open_collection(ops_dir):
                    pass
        assert not (ops_dir / ".lock").exists()
