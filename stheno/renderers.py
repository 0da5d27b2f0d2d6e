"""Content renderers for Stheno.

Rendering a template runs its compiled Jinja2 body against a context and,
for Markdown and Org-mode sources, converts the result to HTML. Code blocks
are highlighted with Pygments when a highlight theme is configured.

Key classes:
- MarkdownConverter: Converts Markdown to HTML with mistune.
- OrgConverter: Converts Org-mode to HTML with pandoc.
- ConverterRegistry: Picks the converter for a source extension.

Key functions:
- render_template: Execute a template and convert its output.
- highlight_code: Highlight a code block, or escape it when no theme is set.
"""

from __future__ import annotations

import html
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import jinja2
import mistune
import pypandoc
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .errors import ConversionError, RenderError
from .html_utils import escape_html

if TYPE_CHECKING:
    from .templates import Template

CODE_TABWIDTH = 4

# pandoc renders annotated org source blocks as <pre class="lang"><code>.
_ORG_CODE_BLOCK_RE = re.compile(
    r'<pre class="(?P<classes>[^"]*)"><code>(?P<code>.*?)</code></pre>', re.DOTALL
)


class UnknownThemeError(ValueError):
    """Raised when the configured highlight theme is not a Pygments style."""


def highlight_code(code: str, lang: str | None, theme: str | None) -> str:
    """Render a code block as HTML.

    Args:
        code: Raw (unescaped) code.
        lang: Language identifier, may be empty.
        theme: Pygments style name, or None to skip highlighting.

    Returns:
        Highlighted HTML when both a theme and a known language are given,
        otherwise an escaped ``<pre><code>`` block.

    Raises:
        UnknownThemeError: If ``theme`` is not a Pygments style.
    """
    if theme and lang:
        try:
            lexer = get_lexer_by_name(lang, stripall=True, tabsize=CODE_TABWIDTH)
        except ClassNotFound:
            lexer = None
        if lexer is not None:
            try:
                formatter = HtmlFormatter(style=theme, noclasses=True, cssclass="highlight")
            except ClassNotFound as exc:
                raise UnknownThemeError(f"unknown highlight theme '{theme}'") from exc
            return highlight(code, lexer, formatter)
    lang_class = f' class="language-{lang}"' if lang else ""
    return f"<pre><code{lang_class}>{escape_html(code)}</code></pre>\n"


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer that highlights fenced code blocks."""

    def __init__(self, theme: str | None):
        super().__init__(escape=False)
        self.theme = theme

    def block_code(self, code: str, info: str | None = None) -> str:
        lang = info.split()[0] if info and info.strip() else None
        return highlight_code(code, lang, self.theme)


class MarkdownConverter:
    """Converts Markdown to HTML."""

    extensions = (".md",)

    def convert(self, text: str, theme: str | None) -> str:
        markdown = mistune.create_markdown(
            renderer=_HighlightRenderer(theme),
            plugins=["strikethrough", "footnotes", "table", "url"],
        )
        return markdown(text)


class OrgConverter:
    """Converts Org-mode to HTML.

    Headlines map to ``h1``, ``h2``, ... by depth. pandoc's own highlighting
    is disabled; annotated source blocks go through ``highlight_code`` instead.
    """

    extensions = (".org",)

    def convert(self, text: str, theme: str | None) -> str:
        converted = pypandoc.convert_text(
            text, "html", format="org", extra_args=["--no-highlight"]
        )

        def repl(match: re.Match) -> str:
            code = html.unescape(match.group("code"))
            classes = match.group("classes").split()
            lang = classes[-1] if classes else None
            return highlight_code(code, lang, theme)

        return _ORG_CODE_BLOCK_RE.sub(repl, converted)


class ConverterRegistry:
    """Maps source extensions to HTML converters."""

    def __init__(self):
        self._converters: dict[str, Any] = {}
        self.register(MarkdownConverter())
        self.register(OrgConverter())

    def register(self, converter) -> None:
        for ext in converter.extensions:
            self._converters[ext] = converter

    def get_converter(self, path: Path):
        """Return the converter for ``path``, or None if it is rendered as is."""
        return self._converters.get(path.suffix)


default_converter_registry = ConverterRegistry()


def render_template(
    template: Template,
    context: dict[str, Any],
    highlight_theme: str | None = None,
    registry: ConverterRegistry | None = None,
) -> str:
    """Execute a template against ``context`` and convert the result.

    Args:
        template: Parsed template.
        context: Rendering context; callers set ``page`` to the template metadata.
        highlight_theme: Pygments style for code blocks, or None.
        registry: Converter registry, defaults to Markdown and Org-mode.

    Returns:
        Rendered output.

    Raises:
        RenderError: If the template body fails to execute.
        ConversionError: If Markdown/Org conversion or highlighting fails.
    """
    path = template.source_path
    try:
        content = template.body.render(context)
    except jinja2.TemplateError as exc:
        raise RenderError(path, f"{type(exc).__name__}: {exc}", exc) from exc
    except (TypeError, ValueError, AttributeError, KeyError, ZeroDivisionError) as exc:
        raise RenderError(path, f"{type(exc).__name__}: {exc}", exc) from exc

    converter = (registry or default_converter_registry).get_converter(path)
    if converter is None:
        return content
    try:
        return converter.convert(content, highlight_theme)
    except UnknownThemeError as exc:
        raise ConversionError(path, str(exc), exc) from exc
    except (RuntimeError, OSError) as exc:
        raise ConversionError(path, f"{type(exc).__name__}: {exc}", exc) from exc
