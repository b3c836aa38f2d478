from __future__ import annotations

import asyncio

import pytest

from poseoverlay.media.video_source import CaptureMediaSource
from poseoverlay.playback.pipeline import build_pipeline
from poseoverlay.playback.state import MediaEventType, PlaybackState
from poseoverlay.pose.base import EstimationError
from tests.fakes import FakeCapture, FakeEstimator, FakeMediaSource, make_pose, settle


def _pipeline(runtime_cfg, catalog, estimator, sport="squat"):
    return build_pipeline(runtime_cfg, catalog, sport=sport, estimator=estimator, enable_audio=False, show_hud=False)


def test_load_renders_first_frame(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        source = FakeMediaSource(size=(1280, 720))
        pipeline.open(source)
        await settle()
        scheduler = pipeline.scheduler
        assert scheduler.state is PlaybackState.READY
        assert scheduler.stats.renders == 1
        assert scheduler.stats.applied == 1
        assert pipeline.surface.size == (960, 540)
        assert scheduler.last_pose.image_size == (960, 540)
        assert pipeline.surface.image.any()
        assert pipeline.compose().shape == (540, 960, 3)
        pipeline.close()
        assert estimator.closed and source.closed

    asyncio.run(scenario())


def test_pause_while_estimate_outstanding(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        scheduler = pipeline.scheduler
        source = FakeMediaSource()
        pipeline.open(source)
        await settle()
        applied_before = scheduler.stats.applied

        estimator.hold = True
        scheduler.play()
        assert scheduler.state is PlaybackState.PLAYING
        await asyncio.sleep(0.05)
        assert len(estimator.pending) == 1
        assert scheduler.stats.skipped > 0

        scheduler.pause()
        assert scheduler.state is PlaybackState.PAUSED
        await settle()
        assert len(estimator.pending) == 2

        estimator.pending[0].set_result(make_pose())
        await settle()
        assert scheduler.stats.discarded == 1
        assert scheduler.stats.applied == applied_before

        estimator.pending[1].set_result(make_pose())
        await settle()
        assert scheduler.stats.applied == applied_before + 1
        assert scheduler.stats.renders == 2

        await asyncio.sleep(0.03)
        assert len(estimator.pending) == 2
        pipeline.close()

    asyncio.run(scenario())


def test_frame_callbacks_drive_ticks(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        scheduler = pipeline.scheduler
        source = FakeMediaSource(frame_callbacks=True)
        pipeline.open(source)
        await settle()
        scheduler.play()
        assert source.pending_callbacks == 1
        source.advance_frame()
        await settle()
        source.advance_frame()
        await settle()
        assert scheduler.stats.ticks == 2
        assert scheduler.stats.applied == 3
        scheduler.pause()
        assert source.pending_callbacks == 0
        pipeline.close()

    asyncio.run(scenario())


def test_seek_clamps_and_renders_landed_frame(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        scheduler = pipeline.scheduler
        source = FakeMediaSource(duration=10.0)
        pipeline.open(source)
        await settle()

        scheduler.seek(3.0)
        assert scheduler.state is PlaybackState.SEEKING
        source.complete_seek()
        await settle()
        assert scheduler.state is PlaybackState.READY
        assert scheduler.position == 3.0
        assert scheduler.stats.renders == 2

        scheduler.seek(100.0)
        scheduler.seek(-4.0)
        assert source.seeks[1] == 10.0 - 1e-3
        assert source.seeks[2] == 0.0
        pipeline.close()

    asyncio.run(scenario())


def test_step_from_playing(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        scheduler = pipeline.scheduler
        source = FakeMediaSource(duration=10.0, frame_rate=25.0)
        pipeline.open(source)
        await settle()
        scheduler.play()
        source.current_time = 2.0
        renders = scheduler.stats.renders

        assert scheduler.step(1) is True
        assert source.paused
        assert scheduler.state is PlaybackState.SEEKING
        assert scheduler.stats.renders == renders
        assert source.seeks[-1] == pytest.approx(2.04)

        source.complete_seek()
        await settle()
        assert scheduler.stats.renders == renders + 1

        source.current_time = 9.99
        scheduler.step(1)
        assert source.seeks[-1] == 10.0 - 1e-3
        source.complete_seek()
        source.current_time = 0.0
        scheduler.step(-1)
        assert source.seeks[-1] == 0.0
        pipeline.close()

    asyncio.run(scenario())


def test_step_on_live_capture_renders_frozen_frame(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        scheduler = pipeline.scheduler
        capture = FakeCapture(frames=200)
        pipeline.open(CaptureMediaSource(0, live=True, capture_factory=lambda target: capture))
        await settle()
        scheduler.play()
        await asyncio.sleep(0.05)
        renders = scheduler.stats.renders

        assert scheduler.step(1) is True
        await asyncio.sleep(0.05)
        assert scheduler.state is PlaybackState.PAUSED
        assert scheduler.stats.renders == renders + 1
        assert scheduler.last_pose is not None
        pipeline.close()

    asyncio.run(scenario())


def test_media_error_stops_sampling(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        scheduler = pipeline.scheduler
        source = FakeMediaSource()
        pipeline.open(source)
        await settle()
        scheduler.play()
        source.emit(MediaEventType.ERROR, 3, "corrupt frame")
        assert scheduler.state is PlaybackState.ERRORED
        assert scheduler.status == "media error (code 3): corrupt frame"
        calls = estimator.calls
        await asyncio.sleep(0.03)
        assert estimator.calls == calls
        scheduler.play()
        assert scheduler.state is PlaybackState.ERRORED
        pipeline.close()

    asyncio.run(scenario())


def test_ended_stops_sampling(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        scheduler = pipeline.scheduler
        source = FakeMediaSource()
        pipeline.open(source)
        await settle()
        scheduler.play()
        await asyncio.sleep(0.02)
        source.emit(MediaEventType.ENDED)
        await settle()
        assert scheduler.state is PlaybackState.ENDED
        assert scheduler.status == "ended"
        calls = estimator.calls
        await asyncio.sleep(0.03)
        assert estimator.calls == calls
        pipeline.close()

    asyncio.run(scenario())


def test_no_person_clears_surface(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        scheduler = pipeline.scheduler
        source = FakeMediaSource()
        pipeline.open(source)
        await settle()
        assert pipeline.surface.image.any()

        estimator.pose = None
        pipeline.select_sport("squat")
        await settle()
        assert scheduler.status == "no person detected"
        assert not pipeline.surface.image.any()
        pipeline.close()

    asyncio.run(scenario())


def test_estimation_failure_is_recoverable(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        estimator.error = EstimationError("model crashed")
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        scheduler = pipeline.scheduler
        source = FakeMediaSource()
        pipeline.open(source)
        await settle()
        assert scheduler.stats.failures == 1
        assert scheduler.stats.applied == 0

        estimator.error = None
        scheduler.play()
        await asyncio.sleep(0.05)
        assert scheduler.stats.applied > 0
        assert scheduler.state is PlaybackState.PLAYING
        pipeline.close()

    asyncio.run(scenario())


def test_sport_change_while_paused_rerenders(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        scheduler = pipeline.scheduler
        source = FakeMediaSource()
        pipeline.open(source)
        await settle()
        renders = scheduler.stats.renders

        context = pipeline.select_sport("golf")
        await settle()
        assert scheduler.context is context
        assert scheduler.stats.renders == renders + 1
        snapshot = pipeline.snapshot()
        assert snapshot["sport"] == "golf"
        assert snapshot["metrics"]["X-factor"] is not None
        assert snapshot["repCount"] == 0
        pipeline.close()

    asyncio.run(scenario())


def test_new_source_resets_state(runtime_cfg, catalog):
    async def scenario():
        estimator = FakeEstimator(make_pose())
        pipeline = _pipeline(runtime_cfg, catalog, estimator)
        scheduler = pipeline.scheduler
        first = FakeMediaSource()
        pipeline.open(first)
        await settle()
        scheduler.play()
        generation = scheduler.generation

        second = FakeMediaSource(size=(320, 240))
        pipeline.open(second)
        await settle()
        assert scheduler.source is second
        assert scheduler.generation > generation
        assert scheduler.state is PlaybackState.READY
        first.emit(MediaEventType.PLAY)
        assert scheduler.state is PlaybackState.READY
        pipeline.close()

    asyncio.run(scenario())
