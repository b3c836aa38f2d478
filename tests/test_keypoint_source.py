from __future__ import annotations

import asyncio
import threading
import time

import numpy as np
import pytest

from poseoverlay.pose.base import EstimationError, ExecutorKeypointSource


class BlockingModel:
    def __init__(self, delay: float = 0.2, error: Exception | None = None) -> None:
        self.delay = delay
        self.error = error
        self.log = []
        self.started = threading.Event()
        self.released = threading.Event()

    def estimate(self, frame):
        self.log.append("start")
        self.started.set()
        time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.log.append("end")
        return None

    def close(self) -> None:
        self.log.append("close")
        self.released.set()


def test_close_waits_for_running_estimate():
    async def scenario():
        model = BlockingModel()
        source = ExecutorKeypointSource(model)
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(source.estimate(np.zeros((8, 8, 3), dtype=np.uint8)))
        assert await loop.run_in_executor(None, model.started.wait, 1.0)
        source.close()
        source.close()
        assert await task is None
        assert await loop.run_in_executor(None, model.released.wait, 1.0)
        assert model.log == ["start", "end", "close"]

    asyncio.run(scenario())


def test_model_failure_becomes_estimation_error():
    async def scenario():
        source = ExecutorKeypointSource(BlockingModel(delay=0.0, error=RuntimeError("boom")))
        with pytest.raises(EstimationError, match="boom"):
            await source.estimate(np.zeros((8, 8, 3), dtype=np.uint8))
        source.close()

    asyncio.run(scenario())
