from pathlib import Path

import pytest

from stheno.config import load_config


def write_files(root: Path, files: dict) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


@pytest.fixture
def make_project(tmp_path):
    """Write ``files`` under a fresh project root and return its Config."""

    def factory(files: dict, **overrides):
        (tmp_path / "src").mkdir(exist_ok=True)
        write_files(tmp_path, files)
        config = load_config(tmp_path)
        for key, value in overrides.items():
            setattr(config, key, value)
        return config

    return factory
