from __future__ import annotations

from pathlib import Path

import pytest

from poseoverlay.logic.feedback import FeedbackBoard, FeedbackThrottle
from poseoverlay.logic.metrics import MetricBoard, MetricsEngine
from poseoverlay.utils.config import RuntimeConfig, SportCatalog, load_runtime_config, load_sport_profiles

CONFIG_DIR = Path(__file__).resolve().parents[1] / "configs"


@pytest.fixture
def runtime_cfg() -> RuntimeConfig:
    cfg = load_runtime_config(CONFIG_DIR / "runtime.yaml")
    cfg.sampling["tick_interval"] = 0.005
    return cfg


@pytest.fixture
def catalog() -> SportCatalog:
    return load_sport_profiles(CONFIG_DIR / "sports.yaml")


@pytest.fixture
def engine(catalog: SportCatalog) -> MetricsEngine:
    throttle = FeedbackThrottle(min_interval=1.1, board=FeedbackBoard(capacity=6))
    return MetricsEngine(catalog, throttle, board=MetricBoard())
