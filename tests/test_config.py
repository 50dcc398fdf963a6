"""
Tests for configuration loading — defaults, YAML, environment, precedence.
"""

from pathlib import Path

import pytest

from goup.core.config.loader import (
    DEFAULT_INDEX_URL,
    ConfigError,
    GoupConfig,
    default_root,
    load_config,
)


class TestDefaultRoot:
    """Tests for default_root."""

    def test_under_gopath(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("GOPATH", str(tmp_path / "gopath"))
        assert default_root() == tmp_path / "gopath" / "goup"

    def test_without_gopath(self, monkeypatch, tmp_path: Path):
        monkeypatch.delenv("GOPATH", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert default_root() == tmp_path / ".go" / "goup"


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self, tmp_path: Path):
        config = load_config(root=tmp_path)
        assert config.root == tmp_path.resolve()
        assert config.index_url == DEFAULT_INDEX_URL
        assert config.include_all is False
        assert config.target is None

    def test_yaml_in_root(self, tmp_path: Path):
        (tmp_path / "config.yml").write_text(
            "index_url: https://mirror.test/dl/?mode=json\n"
            "download_base_url: https://mirror.test/dl/\n"
            "include_all: true\n"
            "timeout: 5\n"
        )
        config = load_config(root=tmp_path)
        assert config.download_base_url == "https://mirror.test/dl/"
        assert config.timeout == 5.0
        assert config.catalog_url == "https://mirror.test/dl/?mode=json&include=all"

    def test_goup_config_env(self, monkeypatch, tmp_path: Path):
        cfg = tmp_path / "elsewhere.yml"
        cfg.write_text("target: linux-arm64\n")
        monkeypatch.setenv("GOUP_CONFIG", str(cfg))
        assert load_config(root=tmp_path / "root").target == "linux-arm64"

    def test_env_overrides_yaml(self, monkeypatch, tmp_path: Path):
        (tmp_path / "config.yml").write_text("index_url: https://yaml.test/\n")
        monkeypatch.setenv("GOUP_INDEX_URL", "https://env.test/")
        assert load_config(root=tmp_path).index_url == "https://env.test/"

    def test_goup_root_env(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("GOUP_ROOT", str(tmp_path / "envroot"))
        assert load_config().root == (tmp_path / "envroot").resolve()

    def test_explicit_root_wins(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("GOUP_ROOT", str(tmp_path / "envroot"))
        (tmp_path / "config.yml").write_text(f"root: {tmp_path / 'yamlroot'}\n")
        assert load_config(root=tmp_path).root == tmp_path.resolve()

    def test_empty_yaml(self, tmp_path: Path):
        (tmp_path / "config.yml").write_text("")
        assert load_config(root=tmp_path).index_url == DEFAULT_INDEX_URL

    def test_invalid_yaml(self, tmp_path: Path):
        (tmp_path / "config.yml").write_text("index_url: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(root=tmp_path)

    def test_not_a_mapping(self, tmp_path: Path):
        (tmp_path / "config.yml").write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(root=tmp_path)

    def test_invalid_values(self, tmp_path: Path):
        (tmp_path / "config.yml").write_text("timeout: soon\n")
        with pytest.raises(ConfigError) as exc:
            load_config(root=tmp_path)
        assert exc.value.exit_code == 8

    @pytest.mark.parametrize(
        "env_key, value",
        [
            ("GOUP_INDEX_URL", "go.dev/dl/?mode=json"),
            ("GOUP_DOWNLOAD_URL", "ftp://mirror.test/go/"),
            ("GOUP_DOWNLOAD_URL", "https:///dl/"),
        ],
    )
    def test_malformed_url(self, monkeypatch, tmp_path: Path, env_key: str, value: str):
        monkeypatch.setenv(env_key, value)
        with pytest.raises(ConfigError, match="Invalid goup configuration"):
            load_config(root=tmp_path)

    def test_file_url_accepted(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("GOUP_DOWNLOAD_URL", f"file://{tmp_path}/")
        assert load_config(root=tmp_path).download_base_url.startswith("file://")


class TestCatalogUrl:
    def test_plain(self):
        assert GoupConfig(root=Path("/x")).catalog_url == DEFAULT_INDEX_URL

    def test_include_all_without_query(self):
        config = GoupConfig(root=Path("/x"), index_url="https://m.test/dl", include_all=True)
        assert config.catalog_url == "https://m.test/dl?include=all"

    def test_include_all_not_duplicated(self):
        url = DEFAULT_INDEX_URL + "&include=all"
        assert GoupConfig(root=Path("/x"), index_url=url, include_all=True).catalog_url == url
