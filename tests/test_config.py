"""Tests for miner.config module."""

import json

import pytest
import yaml

from miner.config import FetcherMode, FetchPolicy, MinerConfig, load_config, save_config
from miner.constants import DEFAULT_VALID_MIME_TYPES
from miner.errors import ConfigError


class TestFetchPolicy:
    def test_defaults(self):
        policy = FetchPolicy()
        assert policy.fetcher_mode == FetcherMode.EFFICIENT
        assert policy.valid_mime_types == set(DEFAULT_VALID_MIME_TYPES)
        assert policy.max_urls_per_loop is None

    def test_mode_from_string(self):
        assert FetchPolicy(fetcher_mode="Complete").fetcher_mode == FetcherMode.COMPLETE

    def test_mime_types_are_normalized(self):
        policy = FetchPolicy(valid_mime_types={" Text/HTML ", ""})
        assert policy.valid_mime_types == {"text/html"}
        assert policy.accepts_mime_type("TEXT/html")
        assert not policy.accepts_mime_type("application/pdf")

    def test_empty_mime_set_accepts_everything(self):
        assert FetchPolicy(valid_mime_types=set()).accepts_mime_type("image/png")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"crawl_delay_seconds": -1},
            {"max_content_size": 0},
            {"timeout_seconds": 0},
            {"retries": -1},
            {"max_urls_per_loop": 0},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            FetchPolicy(**kwargs)

    def test_from_dict_round_trip(self):
        policy = FetchPolicy(fetcher_mode=FetcherMode.IMPOLITE, max_urls_per_loop=5)
        assert FetchPolicy.from_dict(policy.to_dict()) == policy


class TestMinerConfig:
    def test_phrase_files_must_be_paired(self, tmp_path):
        with pytest.raises(ValueError):
            MinerConfig(positive_phrases_file=tmp_path / "pos.txt")

    def test_uses_phrase_scoring(self, tmp_path):
        config = MinerConfig(
            positive_phrases_file=tmp_path / "pos.txt",
            negative_phrases_file=tmp_path / "neg.txt",
        )
        assert config.uses_phrase_scoring
        assert not MinerConfig().uses_phrase_scoring

    def test_from_dict_nested_policy(self):
        config = MinerConfig.from_dict(
            {
                "concurrency": 2,
                "parse_deadline_seconds": 5,
                "fetch_policy": {"fetcher_mode": "complete", "crawl_delay_seconds": 0.5},
            }
        )
        assert config.concurrency == 2
        assert config.parse_deadline_seconds == 5.0
        assert config.fetch_policy.fetcher_mode == FetcherMode.COMPLETE
        assert config.fetch_policy.crawl_delay_seconds == 0.5


class TestLoadConfig:
    def test_yaml(self, tmp_path):
        path = tmp_path / "miner.yaml"
        path.write_text(
            yaml.safe_dump({"concurrency": 3, "fetch_policy": {"retries": 0}}),
            encoding="utf-8",
        )
        config = load_config(path)
        assert config.concurrency == 3
        assert config.fetch_policy.retries == 0

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == MinerConfig()

    def test_json(self, tmp_path):
        path = tmp_path / "miner.json"
        path.write_text(json.dumps({"fetch_policy": {"fetcher_mode": "impolite"}}), encoding="utf-8")
        assert load_config(path).fetch_policy.fetcher_mode == FetcherMode.IMPOLITE

    def test_unsupported_suffix(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "miner.toml")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_mode(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("fetch_policy:\n  fetcher_mode: turbo\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="bad.yaml"):
            load_config(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("fetch_policy: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_save_then_load(self, tmp_path):
        config = MinerConfig(concurrency=7, fetch_policy=FetchPolicy(retries=3))
        path = tmp_path / "out" / "miner.yaml"
        save_config(config, path)
        assert load_config(path) == config
