"""Unit tests for kasten.files."""

from pathlib import Path

from kasten.files import basename, ensure_dir, list_note_files, list_projects


class TestFiles:
    def test_basename(self):
        assert basename("/a/b/My Note.md") == "My Note"

    def test_list_projects_skips_files_and_hidden(self, tmp_path: Path):
        (tmp_path / "b").mkdir()
        (tmp_path / "a").mkdir()
        (tmp_path / ".git").mkdir()
        (tmp_path / "note.md").write_text("")
        assert list_projects(tmp_path) == [tmp_path / "a", tmp_path / "b"]

    def test_list_projects_missing_root(self, tmp_path: Path):
        assert list_projects(tmp_path / "missing") == []

    def test_list_note_files(self, tmp_path: Path):
        for name in ("B.md", "A.md", ".md", ".draft.md", "C.txt"):
            (tmp_path / name).write_text("")
        (tmp_path / "dir.md").mkdir()
        assert list_note_files(tmp_path, "md") == [tmp_path / "A.md", tmp_path / "B.md"]

    def test_list_note_files_is_not_recursive(self, tmp_path: Path):
        ensure_dir(tmp_path / "sub")
        (tmp_path / "sub" / "Deep.md").write_text("")
        assert list_note_files(tmp_path, ".md") == []

    def test_ensure_dir_is_idempotent(self, tmp_path: Path):
        target = tmp_path / "x" / "y"
        assert ensure_dir(target) == target
        assert ensure_dir(target).is_dir()
