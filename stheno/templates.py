"""Template parsing for Stheno.

A source file is a template when its first line is the front matter
delimiter ``---``. The YAML block up to the next delimiter line becomes the
template metadata and the rest of the file is compiled as a Jinja2 body.
Any other file is a static asset and is copied as is.

Key classes:
- Metadata: Front matter mapping with checked accessors.
- Template: A parsed source file.
- TemplateEngine: Jinja2 environment used to compile template bodies.

Key function:
- parse_template: Parse a file, returning None when it is not a template.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from pathlib import Path
from typing import Any

import jinja2
import yaml
from jinja2 import Environment, FileSystemLoader, TemplateSyntaxError

from .errors import (
    FilesystemError,
    FrontMatterUnterminated,
    InvalidMetadata,
    TemplateCompileError,
)
from .html_utils import join_root_url

FM_SEPARATOR = "---"

# Source extensions converted to HTML after template rendering.
HTML_CONVERTED_EXTENSIONS = {".md": ".html", ".org": ".html"}


class Metadata(dict):
    """Front matter of a template.

    Values are whatever YAML produced. Keys that drive the build (``layout``,
    ``draft``, ``tags``, ``date``) are read through the typed accessors, which
    raise InvalidMetadata instead of failing later on a bad cast.

    Attributes:
        source_path: File the metadata was read from, used in error messages.
    """

    def __init__(self, values: dict[str, Any] | None = None, source_path: Path | None = None):
        super().__init__(values or {})
        self.source_path = Path(source_path) if source_path else Path()

    def _invalid(self, key: str, expected: str, value: Any) -> InvalidMetadata:
        return InvalidMetadata(
            self.source_path,
            f"'{key}' must be {expected}, got {type(value).__name__}",
        )

    def as_string(self, key: str, default: str | None = None) -> str | None:
        value = self.get(key)
        if value is None:
            return default
        if not isinstance(value, str):
            raise self._invalid(key, "a string", value)
        return value

    def as_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        if not isinstance(value, bool):
            raise self._invalid(key, "a boolean", value)
        return value

    def as_string_list(self, key: str) -> list[str]:
        value = self.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise self._invalid(key, "a list of strings", value)
        for item in value:
            if not isinstance(item, str):
                raise self._invalid(key, "a list of strings", item)
        return list(value)

    def as_date(self, key: str) -> datetime | None:
        """Return ``key`` as a datetime.

        YAML dates and datetimes are accepted as well as ISO 8601 strings.
        """
        value = self.get(key)
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.replace(tzinfo=None)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.strip()).replace(tzinfo=None)
            except ValueError as exc:
                raise InvalidMetadata(
                    self.source_path, f"'{key}' is not a valid date: {value!r}", exc
                ) from exc
        raise self._invalid(key, "a date", value)


@dataclass(frozen=True, eq=False)
class Template:
    """A parsed content unit.

    Attributes:
        source_path: Path to the source file.
        metadata: Front matter of the file.
        body: Compiled Jinja2 template of the file body.
    """

    source_path: Path
    metadata: Metadata
    body: jinja2.Template

    @property
    def source_ext(self) -> str:
        return self.source_path.suffix

    @property
    def target_ext(self) -> str:
        """Extension of the rendered output (.md and .org become .html)."""
        return HTML_CONVERTED_EXTENSIONS.get(self.source_ext, self.source_ext)

    @property
    def is_draft(self) -> bool:
        return self.metadata.as_bool("draft")

    @property
    def is_post(self) -> bool:
        return "date" in self.metadata

    def with_metadata(self, **values: Any) -> Template:
        """Return a copy of this template with ``values`` added to its metadata."""
        metadata = Metadata({**self.metadata, **values}, source_path=self.source_path)
        return replace(self, metadata=metadata)


def _date_to_xmlschema(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _date_to_string(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.strftime("%d %b %Y")
    return str(value)


class TemplateEngine:
    """Jinja2 environment shared by every template of a build.

    Autoescaping is off: rendered child content is inserted into layouts
    verbatim.

    Attributes:
        env: Jinja2 environment.
        site_url: Base URL used by the ``absolute_url`` filter.
    """

    def __init__(self, includes_dir: Path | None = None, site_url: str = ""):
        """Initialize the engine.

        Args:
            includes_dir: Directory searched by ``{% include %}``.
            site_url: Base URL for the ``absolute_url`` filter.
        """
        self.site_url = site_url
        loader = FileSystemLoader(str(includes_dir)) if includes_dir else None
        self.env = Environment(
            loader=loader,
            autoescape=False,
            keep_trailing_newline=True,
        )
        self.env.filters["absolute_url"] = self._absolute_url
        self.env.filters["date_to_xmlschema"] = _date_to_xmlschema
        self.env.filters["date_to_string"] = _date_to_string

    def _absolute_url(self, path: str) -> str:
        if str(path).startswith(("http://", "https://", "//")):
            return path
        return join_root_url(self.site_url, str(path))

    def compile(self, source: str, path: Path) -> jinja2.Template:
        """Compile a template body, naming it after its source path.

        Raises:
            TemplateCompileError: If the body has a syntax error.
        """
        try:
            code = self.env.compile(source, name=str(path), filename=str(path))
        except TemplateSyntaxError as exc:
            raise TemplateCompileError(
                path, f"template syntax error on line {exc.lineno}: {exc.message}", exc
            ) from exc
        return self.env.template_class.from_code(
            self.env, code, self.env.make_globals(None)
        )


def _parse_metadata(source: str, path: Path) -> Metadata:
    if not source.strip():
        return Metadata(source_path=path)
    try:
        values = yaml.safe_load(source)
    except yaml.YAMLError as exc:
        raise InvalidMetadata(path, f"invalid yaml format: {exc}", exc) from exc
    if values is None:
        return Metadata(source_path=path)
    if not isinstance(values, dict):
        raise InvalidMetadata(path, "front matter must be a mapping")
    return Metadata(values, source_path=path)


def parse_template(engine: TemplateEngine, path: Path) -> Template | None:
    """Try to parse the file at ``path`` as a template.

    Args:
        engine: Engine used to compile the body.
        path: Source file.

    Returns:
        The parsed Template, or None if the file does not start with front matter.

    Raises:
        FrontMatterUnterminated: If the closing delimiter is missing.
        InvalidMetadata: If the front matter is not a YAML mapping.
        TemplateCompileError: If the body does not compile.
        FilesystemError: If the file cannot be read.
    """
    path = Path(path)
    metadata_lines: list[str] = []
    body_lines: list[str] = []
    closed = False
    try:
        with open(path, "rb") as f:
            first = f.readline()
            if first.strip() != FM_SEPARATOR.encode():
                return None
            for raw in f:
                line = raw.decode("utf-8").rstrip("\r\n")
                if closed:
                    body_lines.append(line + "\n")
                elif line.strip() == FM_SEPARATOR:
                    closed = True
                else:
                    metadata_lines.append(line + "\n")
    except UnicodeDecodeError as exc:
        raise TemplateCompileError(path, "template is not valid UTF-8", exc) from exc
    except OSError as exc:
        raise FilesystemError(path, f"cannot read file: {exc}", exc) from exc

    if not closed:
        raise FrontMatterUnterminated(path)

    metadata = _parse_metadata("".join(metadata_lines), path)
    body = "".join(body_lines)
    if body.endswith("\n"):
        body = body[:-1]
    return Template(source_path=path, metadata=metadata, body=engine.compile(body, path))
