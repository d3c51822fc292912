from __future__ import annotations

from pathlib import Path

import pytest

from tweet_harvester.config import ConfigLocator, ConfigRepository, GlobalConfig


def test_config_locator_uses_env_and_creates_directories(harvester_home: Path) -> None:
    locator = ConfigLocator()
    assert locator.project_root == harvester_home.resolve()
    assert locator.data_dir.exists()
    assert locator.logs_dir.exists()
    assert locator.global_config_path() == harvester_home.resolve() / "data" / "global_config.yaml"


def test_missing_config_returns_defaults_without_writing(temp_config_repository: ConfigRepository) -> None:
    config = temp_config_repository.load_global_config()
    assert config == GlobalConfig()
    assert not temp_config_repository.locator.global_config_path().exists()


def test_config_repository_global_roundtrip(tmp_path: Path) -> None:
    repository = ConfigRepository(ConfigLocator(project_root=tmp_path))
    config = GlobalConfig.model_validate(
        {
            "agent": {"sender": {"endpoint": "http://collector.test/store-data"}},
            "server": {"port": 8080, "ad_markers": ["sponsored"]},
        }
    )
    path = repository.save_global_config(config)
    assert path.suffix == ".yaml"

    reloaded = ConfigRepository(ConfigLocator(project_root=tmp_path)).load_global_config()
    assert reloaded == config


def test_yaml_must_contain_a_mapping(temp_config_repository: ConfigRepository) -> None:
    path = temp_config_repository.locator.global_config_path()
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        temp_config_repository.load_global_config()


def test_server_data_dir_follows_project_root(temp_config_repository: ConfigRepository) -> None:
    root = temp_config_repository.locator.project_root
    assert temp_config_repository.server_data_dir() == root / "data" / "tweets"
