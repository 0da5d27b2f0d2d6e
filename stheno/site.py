"""Site model for Stheno.

A Site is the aggregate view of one build pass: every template under the
source directory, the layouts they may reference, posts and pages, the tag
index and the shared rendering context. It is loaded fresh for every build
and never updated in place.

Key class:
- Site: Loaded with ``Site.load(config)``; renders templates through their
  layout chain with ``Site.render(template)``.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import Config, load_data
from .errors import InvalidLayout, LayoutCycle, LayoutNotFound
from .renderers import render_template
from .templates import Template, TemplateEngine, parse_template

logger = logging.getLogger(__name__)


def is_hidden(path: Path) -> bool:
    return path.name.startswith(".")


def iter_source_files(src_dir: Path):
    """Yield ``(dirpath, dirnames, filenames)`` under ``src_dir`` in lexical order.

    Hidden files and directories are skipped.
    """
    for dirpath, dirnames, filenames in os.walk(src_dir):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        files = sorted(f for f in filenames if not f.startswith("."))
        yield Path(dirpath), dirnames, files


def derive_url(rel_target: Path) -> str:
    """Return the URL of a target file, hiding .html and collapsing index.html.

    Examples:
        >>> derive_url(Path("blog/hello.html"))
        '/blog/hello'
        >>> derive_url(Path("blog/index.html"))
        '/blog/'
    """
    posix = rel_target.as_posix()
    if rel_target.name == "index.html":
        parent = rel_target.parent.as_posix()
        return "/" if parent == "." else f"/{parent}/"
    if posix.endswith(".html"):
        posix = posix[: -len(".html")]
    return f"/{posix}"


def _post_sort_key(template: Template) -> datetime:
    return template.metadata.as_date("date") or datetime.min


class Site:
    """Templates of one build pass.

    Attributes:
        config: Project configuration.
        layouts: Layout name to template.
        templates: Source path to template, for every parsed file under src.
        posts: Non-draft posts (all posts in draft mode), newest first.
        pages: Templates without a date.
        tags: Tag to the posts carrying it, in post order.
        data: Contents of the data directory.
        context: Base rendering context, built once per load.
    """

    def __init__(self, config: Config, engine: TemplateEngine | None = None):
        self.config = config
        self.engine = engine or TemplateEngine(config.includes_dir, config.site_url)
        self.layouts: dict[str, Template] = {}
        self.templates: dict[Path, Template] = {}
        self.posts: list[Template] = []
        self.pages: list[Template] = []
        self.tags: dict[str, list[Template]] = {}
        self.data: dict[str, Any] = {}
        self.context: dict[str, Any] = {}

    @classmethod
    def load(cls, config: Config) -> Site:
        """Parse layouts and every source file into a new Site.

        Any parse error aborts the load.
        """
        site = cls(config)
        site.data = load_data(config.data_dir)
        site._load_layouts()
        site._load_templates()
        site.context = site.base_context()
        return site

    def _load_layouts(self) -> None:
        layouts_dir = self.config.layouts_dir
        if not layouts_dir.is_dir():
            return
        for path in sorted(layouts_dir.iterdir()):
            if path.is_dir() or is_hidden(path):
                continue
            template = parse_template(self.engine, path)
            if template is None:
                raise InvalidLayout(path)
            self.layouts[path.stem] = template

    def _load_templates(self) -> None:
        src_dir = self.config.src_dir
        for dirpath, _, filenames in iter_source_files(src_dir):
            for name in filenames:
                path = dirpath / name
                template = parse_template(self.engine, path)
                if template is None:
                    continue
                if "url" not in template.metadata:
                    rel = path.relative_to(src_dir).with_suffix(template.target_ext)
                    template = template.with_metadata(url=derive_url(rel))
                self.templates[path] = template
                if template.is_draft and not self.config.include_drafts:
                    continue
                if template.is_post:
                    self.posts.append(template)
                else:
                    self.pages.append(template)

        self.posts.sort(key=_post_sort_key, reverse=True)
        for post in self.posts:
            for tag in post.metadata.as_string_list("tags"):
                self.tags.setdefault(tag, []).append(post)
        logger.debug(
            "loaded %d posts, %d pages, %d layouts",
            len(self.posts),
            len(self.pages),
            len(self.layouts),
        )

    def is_excluded(self, template: Template) -> bool:
        """Whether a template is left out of this build (drafts in production)."""
        return template.is_draft and not self.config.include_drafts

    def base_context(self) -> dict[str, Any]:
        """Build the context shared by every top-level render of this build.

        ``Site.load`` stores it in ``context``; each render works on a shallow copy.
        """
        return {
            "config": self.config.values,
            "data": self.data,
            "posts": [dict(post.metadata) for post in self.posts],
            "tags": {
                tag: [dict(post.metadata) for post in posts]
                for tag, posts in self.tags.items()
            },
        }

    def render(self, template: Template) -> str:
        """Render a template and wrap it in its layout chain.

        Each layout receives the previous output as ``content`` and its own
        metadata as ``layout``. The chain ends at a layout without a
        ``layout`` key.

        Raises:
            LayoutNotFound: If a referenced layout does not exist.
            LayoutCycle: If a layout is reached twice in the same chain.
        """
        theme = self.config.highlight_theme
        context = dict(self.context)
        context["page"] = dict(template.metadata)
        content = render_template(template, context, theme)

        chain: list[str] = []
        name = template.metadata.as_string("layout")
        while name is not None:
            if name in chain:
                raise LayoutCycle(template.source_path, chain + [name])
            chain.append(name)
            layout = self.layouts.get(name)
            if layout is None:
                raise LayoutNotFound(template.source_path, name)
            context["layout"] = dict(layout.metadata)
            context["content"] = content
            content = render_template(layout, context, theme)
            name = layout.metadata.as_string("layout")
        return content
