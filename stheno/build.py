"""Site building functionality for Stheno.

The build walks the source tree in lexical order and mirrors it into the
target directory: templates are rendered through their layouts and written
with their target extension, every other file is copied unchanged. The target
directory is wiped first, so a build only ever reflects the current sources.

Writes are not atomic: a failure aborts the build, leaving whatever was
already written in place.

Key functions:
- build_site: Render a loaded Site into its target directory.
- build_project: Load the configuration and site of a project, then build it.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .config import Config, load_config
from .errors import FilesystemError
from .processors import OutputProcessorRegistry, create_default_registry
from .site import Site, iter_source_files

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        output_dir: Directory where the site was built.
        rendered: Target paths written from templates.
        copied: Target paths copied from static files.
    """

    output_dir: Path
    rendered: list[Path] = field(default_factory=list)
    copied: list[Path] = field(default_factory=list)


def ensure_clean_dir(path: Path) -> None:
    """Remove ``path`` if it exists and recreate it empty."""
    try:
        if path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(path, f"cannot clean target directory: {exc}", exc) from exc


def build_site(
    site: Site,
    processors: OutputProcessorRegistry | None = None,
) -> BuildResult:
    """Build ``site`` into its configured target directory.

    Args:
        site: Loaded site.
        processors: Output processors, defaults to those enabled by the config.

    Returns:
        BuildResult listing the written files.

    Raises:
        BuildError: On the first render or write failure.
    """
    config = site.config
    if processors is None:
        processors = create_default_registry(config)
    src_dir = config.src_dir
    target_dir = config.target_dir
    ensure_clean_dir(target_dir)
    result = BuildResult(output_dir=target_dir)

    for dirpath, _, filenames in iter_source_files(src_dir):
        target_subdir = target_dir / dirpath.relative_to(src_dir)
        try:
            target_subdir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(target_subdir, f"cannot create directory: {exc}", exc) from exc

        for name in filenames:
            source = dirpath / name
            template = site.templates.get(source)
            if template is None:
                target = target_subdir / name
                _copy_file(source, target, processors)
                result.copied.append(target)
                continue
            if site.is_excluded(template):
                logger.debug("skipping draft %s", source)
                continue
            target = (target_subdir / name).with_suffix(template.target_ext)
            content = site.render(template)
            content = processors.process(content, target)
            _write_text(target, content)
            result.rendered.append(target)

    logger.debug(
        "wrote %d rendered and %d copied files to %s",
        len(result.rendered),
        len(result.copied),
        target_dir,
    )
    return result


def build_project(project_root: Path) -> BuildResult:
    """Load the production configuration and site of a project and build it."""
    config = load_config(project_root)
    return build_site(Site.load(config))


def _write_text(target: Path, content: str) -> None:
    try:
        with open(target, "w", encoding="utf-8", newline="") as f:
            f.write(content)
    except OSError as exc:
        raise FilesystemError(target, f"cannot write file: {exc}", exc) from exc


def _copy_file(source: Path, target: Path, processors: OutputProcessorRegistry) -> None:
    """Copy a static file, running output processors over .html/.css/.js files."""
    try:
        if processors.applies_to(target):
            try:
                content = source.read_text(encoding="utf-8")
            except UnicodeDecodeError:
                content = None
            if content is not None:
                _write_text(target, processors.process(content, target))
                return
        shutil.copyfile(source, target)
    except OSError as exc:
        raise FilesystemError(source, f"cannot copy file: {exc}", exc) from exc
