from pathlib import Path

import pytest
import yaml

from sitecrawl.exceptions import ConfigError
from sitecrawl.utils.config import (
    ConfigManager, default_output_dir, extract_domain, load_config
)


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_defaults_from_url_only():
    config = load_config(overrides={'base_url': "https://Example.com/start"})
    crawler = config.crawler

    assert crawler.allowed_domain == "example.com"
    assert crawler.max_depth == 2
    assert crawler.max_workers == 20
    assert crawler.rate_limit == 2
    assert crawler.use_sitemap is True
    assert crawler.output_dir == default_output_dir("example.com")
    assert crawler.output_dir.name == "crawler_results_example_com"
    assert config.logging.level == "INFO"


def test_yaml_file_is_loaded(tmp_path):
    path = write_yaml(tmp_path / "config.yaml", {
        'crawler': {
            'base_url': "http://example.com/",
            'max_depth': 4,
            'output_dir': str(tmp_path / "out"),
            'exclude_patterns': ["/private/"],
        },
        'logging': {'level': "DEBUG", 'file': None},
    })
    config = load_config(path)

    assert config.crawler.max_depth == 4
    assert config.crawler.output_dir == tmp_path / "out"
    assert config.crawler.exclude_patterns == ("/private/",)
    assert config.logging.level == "DEBUG"
    assert config.logging.file is None


def test_precedence_file_then_profile_then_overrides(tmp_path):
    path = write_yaml(tmp_path / "config.yaml", {
        'crawler': {'base_url': "http://example.com/", 'max_depth': 1, 'max_workers': 3},
    })
    config = load_config(path, overrides={'max_workers': 7, 'rate_limit': None}, profile="fast")

    assert config.crawler.max_depth == 3
    assert config.crawler.max_workers == 7
    assert config.crawler.rate_limit == 10


def test_explicit_domain_is_kept():
    config = load_config(overrides={'base_url': "http://www.example.com/", 'allowed_domain': "WWW.Example.com"})
    assert config.crawler.allowed_domain == "www.example.com"


@pytest.mark.parametrize("overrides", [
    {},
    {'base_url': "example.com"},
    {'base_url': "ftp://example.com/"},
    {'base_url': "http://example.com/", 'max_depth': -1},
    {'base_url': "http://example.com/", 'max_workers': 0},
    {'base_url': "http://example.com/", 'rate_limit': -2},
    {'base_url': "http://example.com/", 'request_timeout': 0},
    {'base_url': "http://example.com/", 'exclude_patterns': ["("]},
    {'base_url': "http://example.com/", 'unknown_option': 1},
])
def test_invalid_configuration(overrides):
    with pytest.raises(ConfigError):
        load_config(overrides=overrides)


def test_unknown_profile():
    with pytest.raises(ConfigError, match="available"):
        load_config(overrides={'base_url': "http://example.com/"}, profile="turbo")


def test_missing_file():
    with pytest.raises(ConfigError, match="not found"):
        load_config("/nonexistent/config.yaml")


def test_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("crawler: [unclosed")
    with pytest.raises(ConfigError):
        load_config(str(path))


def test_bad_log_level(tmp_path):
    path = write_yaml(tmp_path / "config.yaml", {
        'crawler': {'base_url': "http://example.com/"},
        'logging': {'level': "LOUD"},
    })
    with pytest.raises(ConfigError, match="log level"):
        load_config(path)


def test_config_property_requires_load():
    manager = ConfigManager()
    with pytest.raises(ConfigError):
        manager.config
    manager.load_config({'base_url': "http://example.com/"})
    assert manager.config.crawler.base_url == "http://example.com/"


def test_extract_domain():
    assert extract_domain("http://user:pw@Example.com:8080/x") == "example.com:8080"
    assert extract_domain("mailto:me@example.com") == ""
    assert isinstance(default_output_dir("a.b"), Path)
