from __future__ import annotations

import os

from release_sync.workspace import Workspace


def test_workspace_name_and_cleanup(tmp_path):
    with Workspace("ac me/wid:get", base_dir=tmp_path) as workspace:
        assert workspace.path.is_dir()
        assert workspace.path.name.startswith(f"release-sync.ac_me.wid_get.{os.getpid()}-")
        workspace.config_path.write_text("{}")

    assert not workspace.path.exists()
    assert not workspace.alive


def test_cleanup_runs_once(tmp_path):
    workspace = Workspace("acme/widget", base_dir=tmp_path)

    workspace.cleanup()
    workspace.cleanup()

    assert not workspace.path.exists()


def test_cleanup_on_exception(tmp_path):
    try:
        with Workspace("acme/widget", base_dir=tmp_path) as workspace:
            raise KeyboardInterrupt
    except KeyboardInterrupt:
        pass

    assert not workspace.path.exists()
