"""
watch.py — watches the target file and reports content changes.

The observer watches the target's directory (single files are not portable
watch targets) and the handler filters events down to the target itself.
"""
import os

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer


class TargetChangeHandler(FileSystemEventHandler):
    """Calls on_change() when the target file's content changes.

    Editors that save atomically write a temp file and move it over the
    target, so created and moved-onto-target events count as changes too.
    Deletes and moves away from the target are ignored.
    """

    def __init__(self, target_path, on_change):
        super().__init__()
        self.target_path = os.path.realpath(target_path)
        self.on_change = on_change

    def _is_target(self, path):
        if not path:
            return False
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        return os.path.realpath(path) == self.target_path

    def on_modified(self, event):
        if not event.is_directory and self._is_target(event.src_path):
            self.on_change()

    def on_created(self, event):
        if not event.is_directory and self._is_target(event.src_path):
            self.on_change()

    def on_moved(self, event):
        if not event.is_directory and self._is_target(event.dest_path):
            self.on_change()


class ChangeWatcher:
    """Owns the watchdog observer thread for one target file."""

    def __init__(self, target_path, on_change):
        self.target_path = target_path
        self.handler = TargetChangeHandler(target_path, on_change)
        self.observer = None
        self.watch = None

    def start(self):
        # Observe the directory of the resolved target, not of a symlink to it
        observer = Observer()
        self.watch = observer.schedule(self.handler, os.path.dirname(self.handler.target_path),
                                       recursive=False)
        observer.start()
        self.observer = observer
        print(f"Watching {self.target_path} for changes...")

    def stop(self):
        if self.observer is None:
            return
        observer, self.observer = self.observer, None
        observer.stop()
        observer.join()
