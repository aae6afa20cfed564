from __future__ import annotations

import pytest
import yaml

from core.errors import ConfigurationError
from services.config import get_enabled_feeds, load_config, parse_config

CONFIG_YAML = """
DATABASE_PATH: data/test.db
OLLAMA_MODEL: mistral
evaluation:
  batch_size: 4
schedule:
  rss_processing_time: "21:00"
listings:
feeds:
  - name: Times
    url: https://times.test/rss
  - url: https://city.test/rss
    enabled: "false"
  - name: Missing url
"""


def test_parse_config_defaults_and_overrides(monkeypatch):
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
    monkeypatch.setenv("GITHUB_TOKEN", "token")
    monkeypatch.setenv("GITHUB_OWNER", "newsroom")
    monkeypatch.setenv("GITHUB_REPO", "images")

    config = parse_config(yaml.safe_load(CONFIG_YAML))

    assert config.DATABASE_PATH == "data/test.db"
    assert config.OLLAMA_MODEL == "mistral"
    assert config.evaluation.batch_size == 4
    assert config.evaluation.batch_delay_seconds == 2.0
    assert config.schedule.rss_processing_time == "21:00"
    assert config.listings.quotas == {"Local": 1, "Greater": 2}
    assert config.selection.top_k == 5
    assert config.fact_check.pass_threshold == 20
    assert config.storage.configured
    assert config.SLACK_WEBHOOK_URL is None


def test_feed_parsing_skips_bad_entries():
    config = parse_config(yaml.safe_load(CONFIG_YAML))

    assert [feed.name for feed in config.feeds] == ["Times", "https://city.test/rss"]
    assert [feed.url for feed in get_enabled_feeds(config)] == ["https://times.test/rss"]


def test_invalid_section_raises_configuration_error():
    with pytest.raises(ConfigurationError):
        parse_config({"selection": {"top_k": "many"}})


def test_load_config_from_env_path(tmp_path, monkeypatch):
    path = tmp_path / "config.yml"
    path.write_text(CONFIG_YAML)
    monkeypatch.setenv("CURATOR_CONFIG", str(path))

    assert load_config().OLLAMA_MODEL == "mistral"


def test_missing_config_file(tmp_path, monkeypatch):
    monkeypatch.setenv("CURATOR_CONFIG", str(tmp_path / "nope.yml"))

    with pytest.raises(ConfigurationError):
        load_config()
