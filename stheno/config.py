"""Project configuration for Stheno.

Configuration lives in an optional ``config.yml`` at the project root. Directory
names are resolved against the project root; every key, known or not, is also
exposed to templates as ``config``.

Key functions:
- load_config: Production configuration used by ``stheno build``.
- load_dev_config: Development configuration used by ``stheno serve``.
- load_data: Loads YAML files from the data directory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

CONFIG_FILENAME = "config.yml"

DEFAULT_CONFIG: dict[str, Any] = {
    "src_dir": "src",
    "target_dir": "target",
    "layouts_dir": "layouts",
    "includes_dir": "includes",
    "data_dir": "data",
    "url": "",
    "highlight_theme": None,
    "minify": False,
}

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 4001


@dataclass
class Config:
    """Resolved configuration for one project.

    Attributes:
        root: Project root directory.
        src_dir: Directory walked for content and static files.
        target_dir: Directory the site is written to.
        layouts_dir: Directory holding layout templates.
        includes_dir: Directory searched by ``{% include %}``.
        data_dir: Directory of YAML data files.
        site_url: Base URL used by the ``absolute_url`` filter.
        highlight_theme: Pygments style name, or None to disable highlighting.
        minify: Whether to minify .html/.css/.js output.
        include_drafts: Whether draft templates are rendered.
        live_reload: Whether to inject the live reload script into HTML output.
        server_host: Dev server host.
        server_port: Dev server port.
        values: The raw configuration mapping exposed to templates.
    """

    root: Path
    src_dir: Path
    target_dir: Path
    layouts_dir: Path
    includes_dir: Path
    data_dir: Path
    site_url: str = ""
    highlight_theme: str | None = None
    minify: bool = False
    include_drafts: bool = False
    live_reload: bool = False
    server_host: str = DEFAULT_HOST
    server_port: int = DEFAULT_PORT
    values: dict[str, Any] = field(default_factory=dict)


def _read_config_file(project_root: Path) -> dict[str, Any]:
    config_path = project_root / CONFIG_FILENAME
    values = DEFAULT_CONFIG.copy()
    if not config_path.exists():
        return values
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(config_path, f"invalid YAML: {exc}", exc) from exc
    except OSError as exc:
        raise ConfigError(config_path, f"cannot read config: {exc}", exc) from exc
    if loaded is None:
        return values
    if not isinstance(loaded, dict):
        raise ConfigError(config_path, "config must be a mapping")
    values.update(loaded)
    return values


def load_config(project_root: Path) -> Config:
    """Load the production configuration of a project.

    Args:
        project_root: Root directory of the project.

    Returns:
        Config with defaults applied.
    """
    root = Path(project_root).resolve()
    values = _read_config_file(root)
    theme = values.get("highlight_theme")
    return Config(
        root=root,
        src_dir=root / str(values["src_dir"]),
        target_dir=root / str(values["target_dir"]),
        layouts_dir=root / str(values["layouts_dir"]),
        includes_dir=root / str(values["includes_dir"]),
        data_dir=root / str(values["data_dir"]),
        site_url=str(values.get("url") or ""),
        highlight_theme=str(theme) if theme else None,
        minify=bool(values.get("minify", False)),
        values=values,
    )


def load_dev_config(
    project_root: Path,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    live_reload: bool = True,
) -> Config:
    """Load the configuration used by the development server.

    The site URL points at the local server, drafts are rendered and
    minification is turned off.
    """
    config = load_config(project_root)
    config.server_host = host
    config.server_port = port
    config.site_url = f"http://{host}:{port}"
    config.values["url"] = config.site_url
    config.include_drafts = True
    config.minify = False
    config.live_reload = live_reload
    return config


def load_data(data_dir: Path) -> dict[str, Any]:
    """Load site data from YAML files in the data directory.

    Args:
        data_dir: Directory containing ``*.yml``/``*.yaml`` files.

    Returns:
        Dictionary mapping each file stem to its parsed content.
    """
    data: dict[str, Any] = {}
    if not data_dir.is_dir():
        return data
    paths = sorted(list(data_dir.glob("*.yml")) + list(data_dir.glob("*.yaml")))
    for path in paths:
        try:
            with open(path, encoding="utf-8") as f:
                data[path.stem] = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(path, f"invalid YAML: {exc}", exc) from exc
        except OSError as exc:
            raise ConfigError(path, f"cannot read data file: {exc}", exc) from exc
    return data
