from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import uvicorn

from .config import FUSION_POLICIES, AppConfig, load_config
from .encoding import EncodedImage, UploadedImage
from .errors import FusionError
from .logging_utils import RunLogger, configure_logging
from .pipeline.state import RunPhase
from .pipeline_factory import create_pipeline_container
from .prompting import AspectRatio
from .web.app import create_app, download_filename


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="style-fusion",
        description="Blend a subject into the style of a reference image.",
    )
    parser.add_argument("--config", type=Path, help="Path to a YAML or JSON config file")
    parser.add_argument("--log-level", type=str, help="Override logging.level")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the browser application")
    serve.add_argument("--host", type=str, help="Override server.host")
    serve.add_argument("--port", type=int, help="Override server.port")

    run = sub.add_parser("run", help="Fuse two image files without the browser")
    run.add_argument("--reference", type=Path, required=True, help="Style source image")
    run.add_argument("--subject", type=Path, required=True, help="Person/content source image")
    run.add_argument(
        "--aspect-ratio",
        choices=[ratio.value for ratio in AspectRatio],
        help="Requested output ratio (advisory to the model)",
    )
    run.add_argument("--policy", choices=FUSION_POLICIES, help="Override fusion.policy")
    run.add_argument("--out", type=Path, default=Path("output"), help="Directory for the generated images")
    return parser.parse_args(argv)


def save_images(images: Sequence[EncodedImage], out_dir: Path) -> List[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    saved: List[Path] = []
    for index, image in enumerate(images, start=1):
        path = out_dir / download_filename(index, image.mime_type)
        path.write_bytes(image.raw_bytes())
        saved.append(path)
    return saved


def _serve(config: AppConfig) -> int:
    app = create_app(create_pipeline_container(config))
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_config=None)
    return 0


def _run(config: AppConfig, args: argparse.Namespace, log: RunLogger) -> int:
    container = create_pipeline_container(config)
    orchestrator = container.new_orchestrator()
    try:
        orchestrator.upload_reference(UploadedImage.from_path(args.reference))
        orchestrator.upload_subject(UploadedImage.from_path(args.subject))
    except FusionError as exc:
        log.log("CLI", exc.message, level="ERROR")
        return 2

    state = asyncio.run(orchestrator.run())
    if state.phase is not RunPhase.SUCCEEDED:
        log.log("CLI", state.error or "run did not complete", level="ERROR")
        return 1
    saved = save_images(state.images, args.out)
    log.log("SAVE", f"run={state.run_id} -> {', '.join(path.name for path in saved)}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    config = load_config(args.config)
    config.apply_overrides(
        aspect_ratio=getattr(args, "aspect_ratio", None),
        policy=getattr(args, "policy", None),
        host=getattr(args, "host", None),
        port=getattr(args, "port", None),
        log_level=args.log_level,
    )
    configure_logging(config.logging.level, config.logging.logfile)
    log = RunLogger.for_area("cli")
    log.log("BOOT", f"config={config.path or '<defaults>'} command={args.command}")

    if args.command == "serve":
        return _serve(config)
    return _run(config, args, log)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
