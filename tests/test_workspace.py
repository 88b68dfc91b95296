"""Tests for per-operation workspaces and output naming."""

from unittest.mock import patch

import pytest

from ipasigner.src.core.errors import CleanupError, FilesystemError
from ipasigner.src.core.workspace import Workspace, unique_output_path


class TestWorkspace:
    def test_create_layout(self, workspace_root):
        workspace = Workspace.create(workspace_root)
        assert workspace.root.parent == workspace_root
        assert workspace.root.name.startswith("ipasigner-")
        assert workspace.extracted.is_dir()
        assert workspace.payload_dir == workspace.extracted / "Payload"

    def test_names_are_unique(self, workspace_root):
        roots = {Workspace.create(workspace_root).root for _ in range(20)}
        assert len(roots) == 20

    def test_creates_missing_parent(self, tmp_path):
        workspace = Workspace.create(tmp_path / "a" / "b")
        assert workspace.root.is_dir()

    def test_parent_is_a_file(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(FilesystemError):
            Workspace.create(blocker)

    def test_cleanup_removes_everything(self, workspace_root):
        workspace = Workspace.create(workspace_root)
        (workspace.extracted / "Payload").mkdir()
        (workspace.extracted / "Payload" / "file").write_bytes(b"data")

        workspace.cleanup()

        assert not workspace.root.exists()
        assert list(workspace_root.iterdir()) == []

    def test_cleanup_runs_once(self, workspace_root):
        workspace = Workspace.create(workspace_root)
        with patch("ipasigner.src.core.workspace.shutil.rmtree") as rmtree:
            workspace.cleanup()
            workspace.cleanup()
        rmtree.assert_called_once_with(workspace.root)

    def test_cleanup_of_vanished_tree(self, workspace_root):
        workspace = Workspace.create(workspace_root)
        with patch(
            "ipasigner.src.core.workspace.shutil.rmtree", side_effect=FileNotFoundError()
        ):
            workspace.cleanup()
        assert workspace.cleaned_up

    def test_cleanup_failure(self, workspace_root):
        workspace = Workspace.create(workspace_root)
        with patch(
            "ipasigner.src.core.workspace.shutil.rmtree", side_effect=PermissionError("busy")
        ):
            with pytest.raises(CleanupError):
                workspace.cleanup()


class TestUniqueOutputPath:
    def test_name_format(self, tmp_path):
        path = unique_output_path(tmp_path, tmp_path / "in" / "MyApp.ipa")
        assert path.parent == tmp_path
        assert path.name.startswith("MyApp-signed-")
        assert path.suffix == ".ipa"
        assert not path.exists()

    def test_never_returns_existing_file(self, tmp_path):
        names = set()
        for _ in range(10):
            path = unique_output_path(tmp_path, tmp_path / "MyApp.ipa")
            path.write_bytes(b"")
            names.add(path)
        assert len(names) == 10
