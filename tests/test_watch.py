import os
import sys

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from reloadserve.watch import ChangeWatcher, TargetChangeHandler


def make_handler(site):
    calls = []
    handler = TargetChangeHandler(str(site / "index.html"), lambda: calls.append(1))
    return handler, calls


def test_modified_target_reports_change(site):
    handler, calls = make_handler(site)
    handler.dispatch(FileModifiedEvent(str(site / "index.html")))
    assert calls == [1]


def test_atomic_save_reports_change(site):
    handler, calls = make_handler(site)
    handler.dispatch(FileMovedEvent(str(site / ".index.html.swp"), str(site / "index.html")))
    handler.dispatch(FileCreatedEvent(str(site / "index.html")))
    assert calls == [1, 1]


def test_other_files_are_ignored(site):
    handler, calls = make_handler(site)
    handler.dispatch(FileModifiedEvent(str(site / "style.css")))
    handler.dispatch(DirModifiedEvent(str(site)))
    handler.dispatch(FileMovedEvent(str(site / "index.html"), str(site / "old.html")))
    handler.dispatch(FileDeletedEvent(str(site / "index.html")))
    assert calls == []


def test_watcher_start_stop(site):
    calls = []
    watcher = ChangeWatcher(str(site / "index.html"), lambda: calls.append(1))
    watcher.start()
    assert watcher.observer.is_alive()
    watcher.stop()
    watcher.stop()
    assert watcher.observer is None


def test_handler_accepts_relative_paths(site, monkeypatch):
    monkeypatch.chdir(site)
    handler, calls = make_handler(site)
    handler.dispatch(FileModifiedEvent(os.path.join(".", "index.html")))
    assert calls == [1]


@pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
def test_watcher_follows_symlinked_target(tmp_path):
    real_dir = tmp_path / "real"
    link_dir = tmp_path / "links"
    real_dir.mkdir()
    link_dir.mkdir()
    (real_dir / "index.html").write_text("<body></body>")
    link = link_dir / "index.html"
    os.symlink(real_dir / "index.html", link)

    watcher = ChangeWatcher(str(link), lambda: None)
    watcher.start()
    try:
        assert os.path.realpath(watcher.watch.path) == os.path.realpath(real_dir)
    finally:
        watcher.stop()
