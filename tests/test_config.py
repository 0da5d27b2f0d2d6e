import pytest

from stheno.config import DEFAULT_PORT, load_config, load_data, load_dev_config
from stheno.errors import ConfigError

from conftest import write_files


def test_defaults_without_config_file(tmp_path):
    config = load_config(tmp_path)
    root = tmp_path.resolve()
    assert config.src_dir == root / "src"
    assert config.target_dir == root / "target"
    assert config.layouts_dir == root / "layouts"
    assert config.includes_dir == root / "includes"
    assert config.data_dir == root / "data"
    assert config.site_url == ""
    assert config.highlight_theme is None
    assert config.minify is False
    assert config.include_drafts is False
    assert config.live_reload is False


def test_config_file_overrides_defaults(tmp_path):
    write_files(
        tmp_path,
        {
            "config.yml": (
                "src_dir: content\n"
                "target_dir: public\n"
                "url: https://example.com\n"
                "highlight_theme: monokai\n"
                "minify: false\n"
                "author: Ada\n"
            )
        },
    )
    config = load_config(tmp_path)
    assert config.src_dir == tmp_path.resolve() / "content"
    assert config.target_dir == tmp_path.resolve() / "public"
    assert config.site_url == "https://example.com"
    assert config.highlight_theme == "monokai"
    assert config.minify is False
    assert config.values["author"] == "Ada"


def test_empty_config_file(tmp_path):
    write_files(tmp_path, {"config.yml": ""})
    assert load_config(tmp_path).src_dir.name == "src"


@pytest.mark.parametrize("content", ["key: [unclosed\n", "- a list\n"])
def test_invalid_config_file(tmp_path, content):
    write_files(tmp_path, {"config.yml": content})
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)
    assert excinfo.value.stage == "config"
    assert excinfo.value.source_path.name == "config.yml"


def test_dev_config(tmp_path):
    config = load_dev_config(tmp_path)
    assert config.server_host == "localhost"
    assert config.server_port == DEFAULT_PORT
    assert config.site_url == "http://localhost:4001"
    assert config.values["url"] == "http://localhost:4001"
    assert config.include_drafts is True
    assert config.minify is False
    assert config.live_reload is True


def test_dev_config_overrides(tmp_path):
    config = load_dev_config(tmp_path, host="0.0.0.0", port=8000, live_reload=False)
    assert config.site_url == "http://0.0.0.0:8000"
    assert config.live_reload is False


def test_load_data(tmp_path):
    write_files(
        tmp_path,
        {
            "data/authors.yml": "- name: Ada\n",
            "data/site.yaml": "title: Home\n",
            "data/notes.txt": "ignored",
        },
    )
    data = load_data(tmp_path / "data")
    assert data == {"authors": [{"name": "Ada"}], "site": {"title": "Home"}}


def test_load_data_missing_directory(tmp_path):
    assert load_data(tmp_path / "data") == {}


def test_load_data_invalid_yaml(tmp_path):
    write_files(tmp_path, {"data/broken.yml": "a: [b\n"})
    with pytest.raises(ConfigError) as excinfo:
        load_data(tmp_path / "data")
    assert excinfo.value.source_path.name == "broken.yml"
