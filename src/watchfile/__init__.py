"""Watchfile — live markdown preview over a streaming connection.

Watches one markdown file and, every time it is saved, renders it to HTML and
pushes the result to each open browser tab.  Every connection runs its own
watch loop; nothing is shared between clients.

Quick start::

    import watchfile

    watchfile.serve(".", watch_path="README.md")

Or from the shell::

    watchfile serve README.md --port 8080

Pieces, leaves first:

    ContentRenderer   markdown -> HTML (Patitas)
    ChangeDetector    per-connection file watch (watchfiles)
    PushSession       one client's delivery channel
    WatchSupervisor   the per-connection change-to-push loop

"""

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0"
__all__ = [
    "ChangeDetector",
    "ContentRenderer",
    "PushSession",
    "WatchSupervisor",
    "WatchfileConfig",
    "__version__",
    "create_app",
    "serve",
]

_LAZY = {
    "WatchfileConfig": "watchfile.config",
    "ContentRenderer": "watchfile.content.renderer",
    "ChangeDetector": "watchfile.content.watcher",
    "PushSession": "watchfile.reactive.session",
    "WatchSupervisor": "watchfile.reactive.supervisor",
    "create_app": "watchfile.app",
    "serve": "watchfile.app",
}


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import watchfile`` fast; Chirp and Patitas load on first use.
    """
    module_name = _LAZY.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)

    import importlib

    return getattr(importlib.import_module(module_name), name)
