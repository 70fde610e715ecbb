"""Tests for opsctl.scaffold: the .ops starter layout."""

from pathlib import Path

from opsctl.ops_data import list_commands
from opsctl.scaffold import STARTER_DIRS, STARTER_FILES, scaffold_ops
from opsctl.store import Collection
from opsctl.template import extract_placeholders


class TestScaffoldOps:
    def test_creates_layout(self, tmp_path: Path) -> None:
        root = tmp_path / ".ops"
        result = scaffold_ops(root)
        assert sorted(result.created) == sorted(STARTER_FILES)
        assert result.skipped == []
        for name in STARTER_DIRS:
            assert (root / name).is_dir()
        assert ".lock" in (root / ".gitignore").read_text()

    def test_keeps_existing_files_without_force(self, tmp_path: Path) -> None:
        root = tmp_path / ".ops"
        scaffold_ops(root)
        (root / "config.toml").write_text('default_repo = "mine/repo"\n')
        result = scaffold_ops(root)
        assert "config.toml" in result.skipped
        assert result.created == []
        assert "mine/repo" in (root / "config.toml").read_text()

    def test_force_overwrites(self, tmp_path: Path) -> None:
        root = tmp_path / ".ops"
        scaffold_ops(root)
        (root / "config.toml").write_text("# edited\n")
        result = scaffold_ops(root, force=True)
        assert "config.toml" in result.created
        assert "[commands]" in (root / "config.toml").read_text()

    def test_starter_commands_are_valid(self, tmp_path: Path) -> None:
        root = tmp_path / ".ops"
        scaffold_ops(root)
        collection = Collection(root)
        assert collection.validate() == []
        ids = [c.frontmatter.id for c in list_commands(collection)]
        assert ids == ["address-issue", "handoff", "review-pr", "triage-issue", "triage-task"]

    def test_declared_placeholders_match_body(self, tmp_path: Path) -> None:
        root = tmp_path / ".ops"
        scaffold_ops(root)
        for command in list_commands(Collection(root)):
            used = set(extract_placeholders(command.body))
            assert set(command.frontmatter.placeholders) == used, command.frontmatter.id
