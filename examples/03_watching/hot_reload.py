#!/usr/bin/env python3
"""
Hot Reload Example

This example watches a YAML file and prints each new configuration while
the file is edited in the background.

What This Example Demonstrates:
- Watcher lifecycle (watch, current, stop)
- Debounced snapshots with increasing versions
- Reload failures that keep the previous configuration

Running the Example:
    python examples/03_watching/hot_reload.py
"""

import logging
import pathlib
import sys
import tempfile
import threading
import time
from dataclasses import dataclass

# examples/03_watching/file.py -> project root is 2 levels up
project_root = str(pathlib.Path(__file__).resolve().parents[2])
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from stratacfg import LoaderOptions, ReloadFailure, Watcher, setting


@dataclass
class Feature:
    enabled: bool = setting(default="false")
    rollout: float = setting(default="0", validate="ge=0,le=1")


def edit(path: pathlib.Path) -> None:
    """Simulate an operator editing the file."""
    for text in ("enabled: true\n", "rollout: 7\n", "enabled: true\nrollout: 0.5\n"):
        time.sleep(1)
        path.write_text(text)


def main():
    logging.basicConfig(level=logging.INFO)
    with tempfile.TemporaryDirectory() as tmp:
        path = pathlib.Path(tmp) / "feature.yaml"
        path.write_text("enabled: false\n")

        watcher = Watcher(LoaderOptions(file=path, debounce=0.2, poll_interval=None))
        stream = watcher.watch(Feature)
        print(f"v1: {watcher.current().value}")

        editor = threading.Thread(target=edit, args=(path,))
        editor.start()
        try:
            for _ in range(3):
                item = stream.get(timeout=10)
                if isinstance(item, ReloadFailure):
                    print(f"reload failed, still at v{item.version}: {item.error}")
                else:
                    print(f"v{item.version}: {item.value}")
        finally:
            editor.join()
            watcher.stop()


if __name__ == "__main__":
    main()
