"""Markdown rendering — raw text to HTML via Patitas.

The renderer is stateless apart from the configured Patitas instance, so a
single ContentRenderer can be shared by every connection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from watchfile._errors import RenderError

if TYPE_CHECKING:
    from collections.abc import Sequence

# GFM-like extensions enabled by default.
DEFAULT_PLUGINS: tuple[str, ...] = ("table", "strikethrough", "task_lists")


class ContentRenderer:
    """Converts markdown source to HTML.

    Malformed markdown is not an error: Patitas degrades to best-effort
    output. Only a genuine parser fault surfaces, as ``RenderError``.

    Args:
        plugins: Patitas plugin names to enable.

    """

    __slots__ = ("_md", "_plugins")

    def __init__(self, plugins: Sequence[str] = DEFAULT_PLUGINS) -> None:
        from patitas import Markdown

        self._plugins = tuple(plugins)
        self._md = Markdown(plugins=list(self._plugins))

    @property
    def plugins(self) -> tuple[str, ...]:
        """Enabled Patitas plugins."""
        return self._plugins

    def render(self, text: str) -> str:
        """Render markdown ``text`` to an HTML string.

        Raises:
            RenderError: If the parser itself fails on this input.

        """
        if not text:
            return ""
        try:
            return str(self._md(text))
        except Exception as exc:
            msg = f"Markdown rendering failed: {exc}"
            raise RenderError(msg) from exc
