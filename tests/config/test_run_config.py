from pathlib import Path

import pytest

from vpsforge.config.run import RunConfig, parse_bool, resolve_target_home

def test_target_home_resolution():
    assert resolve_target_home("root", current_user="ubuntu", current_home="/home/ubuntu") == Path("/root")
    assert resolve_target_home("dev", current_user="dev", current_home="/srv/dev") == Path("/srv/dev")
    assert resolve_target_home("ubuntu", current_user="root", current_home="/root") == Path("/home/ubuntu")

def test_from_env_reads_environment():
    cfg = RunConfig.from_env(
        {"TARGET_USER": "dev", "DRY_RUN": "true", "MODE": "safe", "HOME": "/root"},
        current_user="root",
    )
    assert cfg.target_user == "dev"
    assert cfg.target_home == Path("/home/dev")
    assert cfg.dry_run is True
    assert cfg.mode == "safe"

def test_cli_options_win_over_environment():
    cfg = RunConfig.from_env(
        {"TARGET_USER": "dev", "TARGET_HOME": "/data/dev", "DRY_RUN": "1"},
        target_user="ops",
        target_home=Path("/srv/ops"),
        dry_run=False,
        current_user="root",
    )
    assert cfg.target_user == "ops"
    assert cfg.target_home == Path("/srv/ops")
    assert cfg.dry_run is False

def test_defaults():
    cfg = RunConfig.from_env({}, current_user="root")
    assert cfg.target_user == "ubuntu"
    assert cfg.target_home == Path("/home/ubuntu")
    assert cfg.mode == "vibe"
    assert cfg.dry_run is False

def test_bad_values_rejected():
    with pytest.raises(ValueError):
        RunConfig(mode="yolo")
    with pytest.raises(ValueError):
        parse_bool("maybe", name="DRY_RUN")

def test_run_config_is_frozen():
    cfg = RunConfig()
    with pytest.raises(Exception):
        cfg.dry_run = True
    assert cfg.with_dry_run(True).dry_run is True
    assert cfg.dry_run is False
