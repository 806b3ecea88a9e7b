"""Tests for configuration loading"""

import pytest

from zk_groups.config import GroupsConfig, load_config, validate_config
from zk_groups.constants import DEFAULT_PUBLISH_DELAY
from zk_groups.exceptions import ConfigurationError


def test_defaults():
    config = load_config(environ={})

    assert config == GroupsConfig()
    assert config.publish_delay == DEFAULT_PUBLISH_DELAY


def test_yaml_file(tmp_path):
    path = tmp_path / "groups.yaml"
    path.write_text("publish_delay: 5\nstore_path: /data/groups.cbor\nlog_level: debug\n")

    config = load_config(str(path), environ={})

    assert config.publish_delay == 5.0
    assert config.store_path == "/data/groups.cbor"
    assert config.log_level == "DEBUG"


def test_env_overrides_yaml(tmp_path):
    path = tmp_path / "groups.yaml"
    path.write_text("publish_delay: 5\ndefault_tree_depth: 10\n")

    config = load_config(
        str(path),
        environ={"ZK_GROUPS_PUBLISH_DELAY": "0.5", "ZK_GROUPS_LEDGER_PATH": "l.cbor"},
    )

    assert config.publish_delay == 0.5
    assert config.default_tree_depth == 10
    assert config.ledger_path == "l.cbor"


def test_empty_env_value_ignored():
    config = load_config(environ={"ZK_GROUPS_PUBLISH_DELAY": ""})
    assert config.publish_delay == DEFAULT_PUBLISH_DELAY


def test_empty_yaml(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")

    assert load_config(str(path), environ={}) == GroupsConfig()


@pytest.mark.parametrize(
    "environ",
    [
        {"ZK_GROUPS_PUBLISH_DELAY": "soon"},
        {"ZK_GROUPS_PUBLISH_DELAY": "-1"},
        {"ZK_GROUPS_DEFAULT_TREE_DEPTH": "64"},
        {"ZK_GROUPS_DEFAULT_TREE_DEPTH": "deep"},
        {"ZK_GROUPS_LOG_LEVEL": "chatty"},
    ],
)
def test_invalid_env(environ):
    with pytest.raises(ConfigurationError):
        load_config(environ=environ)


def test_unknown_yaml_key(tmp_path):
    path = tmp_path / "groups.yaml"
    path.write_text("publish_dealy: 5\n")

    with pytest.raises(ConfigurationError):
        load_config(str(path), environ={})


def test_yaml_must_be_mapping(tmp_path):
    path = tmp_path / "groups.yaml"
    path.write_text("- a\n- b\n")

    with pytest.raises(ConfigurationError):
        load_config(str(path), environ={})


def test_missing_yaml_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(str(tmp_path / "missing.yaml"), environ={})


def test_validate_config():
    assert validate_config() is True
