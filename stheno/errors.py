"""Build errors for Stheno.

Every failure that aborts a site load or a build pass is a ``BuildError``
carrying the offending source path and the stage that failed, so the operator
can locate the fault from the message alone.

Stages:
- config: reading config.yml or the data directory.
- parse: front matter and template compilation.
- render: executing a compiled template.
- convert: Markdown/Org to HTML conversion and highlighting.
- layout: resolving the layout chain.
- io: reading sources or writing the target tree.
"""

from __future__ import annotations

from pathlib import Path


class BuildError(Exception):
    """Error during site load or build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    stage = "build"

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = Path(source_path)
        self.message = message
        self.original_error = original_error
        super().__init__(f"{self.stage} error: {source_path}: {message}")


class ConfigError(BuildError):
    stage = "config"


class FrontMatterUnterminated(BuildError):
    stage = "parse"

    def __init__(self, source_path: Path):
        super().__init__(source_path, "front matter not closed")


class InvalidMetadata(BuildError):
    stage = "parse"


class TemplateCompileError(BuildError):
    stage = "parse"


class InvalidLayout(BuildError):
    """A file in the layouts directory is not headed by front matter."""

    stage = "parse"

    def __init__(self, source_path: Path):
        super().__init__(source_path, "layouts must start with front matter")


class RenderError(BuildError):
    stage = "render"


class ConversionError(BuildError):
    stage = "convert"


class LayoutNotFound(BuildError):
    stage = "layout"

    def __init__(self, source_path: Path, name: str):
        self.name = name
        super().__init__(source_path, f"layout '{name}' not found")


class LayoutCycle(BuildError):
    stage = "layout"

    def __init__(self, source_path: Path, chain: list[str]):
        self.chain = list(chain)
        super().__init__(source_path, f"layout cycle: {' -> '.join(self.chain)}")


class FilesystemError(BuildError):
    stage = "io"
