"""Content layer — markdown rendering and watched-file change detection."""

from watchfile.content.renderer import ContentRenderer
from watchfile.content.watcher import ChangeDetector, ChangeEvent, WatchTarget

__all__ = [
    "ChangeDetector",
    "ChangeEvent",
    "ContentRenderer",
    "WatchTarget",
]
