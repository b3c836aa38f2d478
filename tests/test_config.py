from __future__ import annotations

import pytest

from poseoverlay.utils.config import ConfigError, SportId, load_runtime_config, parse_sport_profiles
from tests.conftest import CONFIG_DIR


def test_shipped_runtime_config_loads():
    cfg = load_runtime_config(CONFIG_DIR / "runtime.yaml")
    assert cfg.feedback["min_interval"] == pytest.approx(1.1)
    assert cfg.feedback["capacity"] == 6
    assert cfg.render["confidence_threshold"] == pytest.approx(0.3)
    assert cfg.pose["backend"] == "mediapipe"


def test_catalog_covers_every_sport(catalog):
    assert len(catalog) == len(SportId)
    squat = catalog.get("squat")
    assert squat.labels == ("Left knee", "Right knee", "Asymmetry", "Hip depth")
    assert squat.threshold("depth_angle") == pytest.approx(90.0)
    assert catalog.get(SportId.GOLF).title == "Golf swing"


def test_unknown_sport_lookup(catalog):
    with pytest.raises(ConfigError):
        catalog.get("curling")


def test_missing_labels_rejected():
    data = {sport.value: {"metrics": ["A"]} for sport in SportId}
    data["tennis"] = {"metrics": []}
    with pytest.raises(ConfigError):
        parse_sport_profiles(data)


def test_unknown_sport_in_file_rejected():
    data = {sport.value: {"metrics": ["A"]} for sport in SportId}
    data["curling"] = {"metrics": ["Sweep"]}
    with pytest.raises(ConfigError):
        parse_sport_profiles(data)


def test_missing_sport_rejected():
    data = {sport.value: {"metrics": ["A"]} for sport in SportId if sport is not SportId.GOLF}
    with pytest.raises(ConfigError):
        parse_sport_profiles(data)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_runtime_config(tmp_path / "nope.yaml")


def test_non_mapping_section(tmp_path):
    path = tmp_path / "runtime.yaml"
    path.write_text("feedback: [1, 2]\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_runtime_config(path)
