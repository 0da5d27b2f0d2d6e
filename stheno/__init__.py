"""Stheno static site generator.

Stheno renders a source tree of Jinja2 templates with YAML front matter
(Markdown and Org-mode bodies are converted to HTML) into a target directory,
wrapping pages in named layouts and copying every other file as is.

The development server rebuilds the whole site after each burst of source
changes and tells connected browsers to reload through server-sent events.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
