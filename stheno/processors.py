"""Output processors for Stheno.

Processors transform rendered output right before it is written to the
target directory. They only ever see ``.html``, ``.css`` and ``.js`` outputs
and are all disabled unless the configuration turns them on:

- LiveReloadInjector: adds the dev server's reload script to HTML (serve only).
- HTMLMinifier, CSSMinifier, JSMinifier: minify output (``minify: true``).

Every processor that accepts a path runs, in descending priority order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

import minify_html
from rcssmin import cssmin
from rjsmin import jsmin

from .config import Config
from .html_utils import insert_before_body_end

PROCESSED_EXTENSIONS = {".html", ".css", ".js"}

EVENTS_PATH = "/_events/"

LIVE_RELOAD_SCRIPT = f"""
<script>
(() => {{
  const events = new EventSource('{EVENTS_PATH}');
  events.onmessage = () => location.reload();
}})();
</script>
"""


class BaseOutputProcessor(ABC):
    """Base class for output processors."""

    @property
    @abstractmethod
    def priority(self) -> int:
        """Higher priorities run first."""

    @abstractmethod
    def can_process(self, path: Path) -> bool:
        """Check if this processor applies to a target path."""

    @abstractmethod
    def process(self, content: str, path: Path) -> str:
        """Return the transformed content of ``path``."""


class LiveReloadInjector(BaseOutputProcessor):
    """Injects the live reload script into HTML pages.

    Runs before the HTML minifier so the script is minified along with the page.
    """

    @property
    def priority(self) -> int:
        return 100

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() == ".html"

    def process(self, content: str, path: Path) -> str:
        return insert_before_body_end(content, LIVE_RELOAD_SCRIPT)


class HTMLMinifier(BaseOutputProcessor):
    @property
    def priority(self) -> int:
        return 50

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() == ".html"

    def process(self, content: str, path: Path) -> str:
        return minify_html.minify(content, minify_css=True, minify_js=True)


class CSSMinifier(BaseOutputProcessor):
    @property
    def priority(self) -> int:
        return 50

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() == ".css"

    def process(self, content: str, path: Path) -> str:
        return cssmin(content)


class JSMinifier(BaseOutputProcessor):
    @property
    def priority(self) -> int:
        return 50

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() == ".js"

    def process(self, content: str, path: Path) -> str:
        return jsmin(content)


class OutputProcessorRegistry:
    """Ordered set of output processors."""

    def __init__(self):
        self._processors: list[BaseOutputProcessor] = []

    def __bool__(self) -> bool:
        return bool(self._processors)

    def register(self, processor: BaseOutputProcessor) -> None:
        """Register a processor, keeping the list sorted by priority (highest first)."""
        self._processors.append(processor)
        self._processors.sort(key=lambda p: p.priority, reverse=True)

    def applies_to(self, path: Path) -> bool:
        """Whether any registered processor would transform ``path``."""
        if path.suffix.lower() not in PROCESSED_EXTENSIONS:
            return False
        return any(p.can_process(path) for p in self._processors)

    def process(self, content: str, path: Path) -> str:
        """Run every matching processor over ``content``.

        Args:
            content: Rendered output.
            path: Target path, used to select processors.

        Returns:
            The transformed output.
        """
        if path.suffix.lower() not in PROCESSED_EXTENSIONS:
            return content
        for processor in self._processors:
            if processor.can_process(path):
                content = processor.process(content, path)
        return content


def create_default_registry(config: Config) -> OutputProcessorRegistry:
    """Create a registry with the processors enabled by ``config``."""
    registry = OutputProcessorRegistry()
    if config.live_reload:
        registry.register(LiveReloadInjector())
    if config.minify:
        registry.register(HTMLMinifier())
        registry.register(CSSMinifier())
        registry.register(JSMinifier())
    return registry
