from __future__ import annotations

import argparse
import asyncio
import os
import warnings
from pathlib import Path
from typing import Dict, List, Optional

os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")
warnings.filterwarnings("ignore", message=r"SymbolDatabase\.GetPrototype\(\) is deprecated", category=UserWarning)

import cv2
from loguru import logger

from poseoverlay.media.camera import build_media_source, enumerate_cameras, parse_source_target
from poseoverlay.media.still_image import analyze_still
from poseoverlay.media.video_source import CameraAccessError
from poseoverlay.playback.pipeline import OverlayPipeline, build_pipeline, build_renderer
from poseoverlay.playback.state import PlaybackState
from poseoverlay.pose.base import build_keypoint_source
from poseoverlay.server.logging_utils import configure_logging
from poseoverlay.utils.config import (
    DEFAULT_RUNTIME_CONFIG,
    DEFAULT_SPORTS_CONFIG,
    ConfigError,
    RuntimeConfig,
    SportCatalog,
    SportId,
    load_runtime_config,
    load_sport_profiles,
)
from poseoverlay.utils.profiler import RateMeter

SEEK_STEP_SECONDS = 2.0
SPORT_KEYS: Dict[int, SportId] = {ord(str(idx + 1)): sport for idx, sport in enumerate(SportId)}
FINISHED_STATES = (PlaybackState.ENDED, PlaybackState.ERRORED)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Pose overlay and sport metrics for video and camera input")
    parser.add_argument("--runtime-config", type=Path, default=DEFAULT_RUNTIME_CONFIG, help="Runtime configuration")
    parser.add_argument("--sports-config", type=Path, default=DEFAULT_SPORTS_CONFIG, help="Sport profiles")
    parser.add_argument("--log-level", type=str, default=None, help="Override logging.level from runtime config")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Play a video file or camera with the live overlay")
    run.add_argument("source", nargs="?", default=None, help="Video path, stream URL or camera index (default: first camera)")
    run.add_argument("--sport", type=str, default=None, choices=[s.value for s in SportId], help="Sport profile")
    run.add_argument("--headless", action="store_true", help="Disable window display for benchmarking")
    run.add_argument("--no-audio", action="store_true", help="Disable audio cues")
    run.add_argument("--paused", action="store_true", help="Load without starting playback")
    run.add_argument("--max-seconds", type=float, default=None, help="Stop a headless run after this many seconds")

    image = commands.add_parser("image", help="Analyze a still image")
    image.add_argument("path", type=Path, help="Image file")
    image.add_argument("--output", type=Path, default=None, help="Write the annotated image here")

    serve = commands.add_parser("serve", help="Start the web API")
    serve.add_argument("--host", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)
    return parser.parse_args(argv)


def handle_key(pipeline: OverlayPipeline, key: int, seek_step: float = SEEK_STEP_SECONDS) -> None:
    scheduler = pipeline.scheduler
    source = scheduler.source
    if key == ord(" "):
        if scheduler.state is PlaybackState.PLAYING:
            scheduler.pause()
        else:
            scheduler.play()
    elif key == ord("a"):
        scheduler.step(-1)
    elif key == ord("d"):
        scheduler.step(1)
    elif key in (ord("j"), ord("l")) and source is not None:
        delta = -seek_step if key == ord("j") else seek_step
        scheduler.seek(source.current_time + delta)
    elif key in SPORT_KEYS:
        context = pipeline.select_sport(SPORT_KEYS[key])
        logger.info("Switched sport to {}", context.profile.title)


async def run_viewer(args: argparse.Namespace, runtime_cfg: RuntimeConfig, catalog: SportCatalog) -> int:
    if args.source is None:
        cameras = enumerate_cameras()
        target = cameras[0] if cameras else 0
    else:
        target = parse_source_target(args.source)
    pipeline = build_pipeline(
        runtime_cfg,
        catalog,
        sport=args.sport,
        enable_audio=not args.no_audio,
        show_hud=False if args.headless else None,
    )
    display_cfg = runtime_cfg.display
    window_name = str(display_cfg.get("window_name", "Pose Overlay"))
    interval = 1.0 / max(1.0, float(display_cfg.get("refresh_hz", 30)))
    loop = asyncio.get_running_loop()
    started = loop.time()
    display_rate = RateMeter()
    scheduler = pipeline.scheduler
    try:
        pipeline.open(build_media_source(target, runtime_cfg.source))
        if not args.paused:
            scheduler.play()
        while True:
            await asyncio.sleep(interval)
            if args.headless:
                if scheduler.state in FINISHED_STATES:
                    break
                if args.max_seconds is not None and loop.time() - started >= args.max_seconds:
                    break
                continue
            view = pipeline.compose()
            if view is not None:
                display_rate.tick()
                cv2.imshow(window_name, view)
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key != 0xFF:
                handle_key(pipeline, key)
    finally:
        snapshot = pipeline.snapshot()
        pipeline.close()
        if not args.headless:
            cv2.destroyAllWindows()
    stats = snapshot["stats"]
    logger.info(
        "Finished {} | state={} reps={} ticks={} skipped={} discarded={} failures={} display={:.1f} fps",
        snapshot["sport"],
        snapshot["state"],
        snapshot["repCount"],
        stats["ticks"],
        stats["skipped"],
        stats["discarded"],
        stats["failures"],
        display_rate.get_rate(),
    )
    if args.headless:
        for label, value in snapshot["metrics"].items():
            print(f"{label}: {'-' if value is None else f'{value:.1f}'}")
    return 1 if snapshot["state"] == PlaybackState.ERRORED.value else 0


async def analyze_image(args: argparse.Namespace, runtime_cfg: RuntimeConfig) -> int:
    image = cv2.imread(str(args.path))
    if image is None:
        logger.error("Unable to read image {}", args.path)
        return 2
    estimator = build_keypoint_source(runtime_cfg.pose)
    try:
        analysis = await analyze_still(
            image,
            estimator,
            build_renderer(runtime_cfg.render),
            min_confidence=float(runtime_cfg.metrics.get("min_confidence", 0.3)),
        )
    finally:
        estimator.close()
    if analysis.pose is None:
        print("No person detected.")
    for label, value in (
        ("Left knee", analysis.left_knee),
        ("Right knee", analysis.right_knee),
        ("Asymmetry", analysis.asymmetry),
    ):
        print(f"{label}: {'-' if value is None else f'{value:.1f}'}")
    if args.output is not None:
        cv2.imwrite(str(args.output), analysis.annotated)
        logger.info("Annotated image written to {}", args.output)
    return 0


def serve(args: argparse.Namespace, runtime_cfg: RuntimeConfig) -> int:
    import uvicorn

    os.environ["POSEOVERLAY_RUNTIME_CONFIG"] = str(args.runtime_config)
    os.environ["POSEOVERLAY_SPORTS_CONFIG"] = str(args.sports_config)
    server_cfg = runtime_cfg.server
    uvicorn.run(
        "poseoverlay.server.app:app",
        host=args.host or str(server_cfg.get("host", "127.0.0.1")),
        port=args.port or int(server_cfg.get("port", 8000)),
        log_level=str(runtime_cfg.logging.get("level", "INFO")).lower(),
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        runtime_cfg = load_runtime_config(args.runtime_config)
        configure_logging(args.log_level or str(runtime_cfg.logging.get("level", "INFO")))
        if args.command == "serve":
            return serve(args, runtime_cfg)
        if args.command == "image":
            return asyncio.run(analyze_image(args, runtime_cfg))
        catalog = load_sport_profiles(args.sports_config)
        return asyncio.run(run_viewer(args, runtime_cfg, catalog))
    except ConfigError as exc:
        print(f"Configuration error: {exc}")
        return 2
    except CameraAccessError as exc:
        print(str(exc))
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
