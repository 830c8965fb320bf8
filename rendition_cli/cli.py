from __future__ import annotations

import argparse
import json
import mimetypes
import os
import shutil
import subprocess
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

DEFAULT_ENV_FILE = ".env"
SERVICE_TARGET = "local_adapter.rendition_service:app"


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def _read_env_file(path: Path) -> dict[str, str]:
    env: dict[str, str] = {}
    if not path.exists():
        return env
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        env[key.strip()] = value.strip()
    return env


def _apply_env(env: dict[str, str], *, override: bool = False) -> None:
    for key, value in env.items():
        if value == "":
            continue
        if not override and key in os.environ:
            continue
        os.environ[key] = value


def _load_config():
    from rendition_core.config import get_config

    return get_config()


def _registry(config):
    from rendition_core.registry.sqlite_registry import SqliteRegistry

    return SqliteRegistry(config.registry_path, config.profiles)


def _outcome_payload(outcome) -> dict[str, Any]:
    return {
        "source_asset_id": outcome.source_asset_id,
        "state": outcome.state.value,
        "states": [state.value for state in outcome.states],
        "canonical_url": outcome.canonical_url,
        "canonical_url_rewritten": outcome.canonical_url_rewritten,
        "original_deleted": outcome.original_deleted,
        "avatar_skipped": outcome.avatar_skipped,
        "profiles": [
            {
                "profile": item.profile.value,
                "status": item.status.value,
                "url": item.derivative.url if item.derivative else None,
                "width": item.derivative.width if item.derivative else None,
                "height": item.derivative.height if item.derivative else None,
                "error": item.error,
            }
            for item in outcome.profiles
        ],
        "timings_ms": outcome.timings_ms,
    }


def _uvicorn_cmd(target: str, host: str, port: int, log_level: str) -> list[str]:
    return [
        "uvicorn",
        target,
        "--host",
        host,
        "--port",
        str(port),
        "--log-level",
        log_level,
    ]


def cmd_up(args: argparse.Namespace) -> int:
    cmd = _uvicorn_cmd(SERVICE_TARGET, args.host, args.port, args.log_level)
    if args.dry_run:
        print(" ".join(cmd))
        return 0
    proc = subprocess.Popen(cmd)
    try:
        return proc.wait() or 0
    except KeyboardInterrupt:
        proc.terminate()
        proc.wait(timeout=5)
        return 0


def cmd_process(args: argparse.Namespace) -> int:
    from rendition_core.logging import configure_logging
    from rendition_core.models import new_source_asset
    from rendition_core.pipeline.orchestrator import PipelineOrchestrator

    config = _load_config()
    configure_logging(service="rendition-cli", env=config.env)

    path = Path(args.path)
    if not path.exists() or not path.is_file():
        print(f"File not found: {path}", file=sys.stderr)
        return 1
    content_type = args.content_type or mimetypes.guess_type(path.as_posix())[0]
    asset = new_source_asset(
        url=args.url or path.resolve().as_uri(),
        mime_type=content_type,
        size_bytes=path.stat().st_size,
        asset_id=args.asset_id,
        original_name=args.original_name or path.name,
    )
    orchestrator = PipelineOrchestrator.from_config(config, registry=_registry(config))
    outcome = orchestrator.process(asset, path=str(path))
    _print_json(_outcome_payload(outcome))
    return 1 if outcome.failed else 0


def cmd_derivatives(args: argparse.Namespace) -> int:
    registry = _registry(_load_config())
    derivatives = registry.get_derivatives(args.asset_id)
    _print_json([asdict(item) for item in derivatives])
    return 0


def cmd_preferred(args: argparse.Namespace) -> int:
    registry = _registry(_load_config())
    url = registry.get_preferred_derivative_url(args.asset_id, args.platform)
    if url is None:
        print(f"No derivatives for {args.asset_id}", file=sys.stderr)
        return 1
    print(url)
    return 0


def cmd_probe(args: argparse.Namespace) -> int:
    from rendition_core.media.video import probe_video

    probe = probe_video(args.path, timeout_s=args.timeout)
    _print_json(asdict(probe))
    return 1 if probe.is_empty else 0


def cmd_metadata(args: argparse.Namespace) -> int:
    from rendition_core.imaging.metadata import extract_image_metadata

    metadata = extract_image_metadata(args.path)
    _print_json(asdict(metadata))
    return 1 if metadata.is_empty else 0


def cmd_doctor(args: argparse.Namespace) -> int:
    checks: list[tuple[str, bool, str]] = []

    def check_bin(name: str) -> None:
        available = shutil.which(name) is not None
        msg = "ok" if available else "missing"
        checks.append((name, available, msg))

    check_bin("ffmpeg")
    check_bin("ffprobe")

    storage_base_uri = os.getenv("STORAGE_BASE_URI")
    if not storage_base_uri:
        checks.append(("STORAGE_BASE_URI", False, "unset"))
    elif "://" in storage_base_uri and not storage_base_uri.startswith("file://"):
        checks.append(("STORAGE_BASE_URI", True, storage_base_uri))
    else:
        local_root = storage_base_uri.removeprefix("file://")
        checks.append(("STORAGE_BASE_URI", Path(local_root).exists(), storage_base_uri))

    registry_path = os.getenv("REGISTRY_PATH")
    if registry_path:
        parent = Path(registry_path).parent
        checks.append(("REGISTRY_PATH", parent.exists(), registry_path))
    else:
        checks.append(("REGISTRY_PATH", False, "unset"))

    ok = True
    for name, passed, info in checks:
        status = "ok" if passed else "missing"
        if not passed:
            ok = False
        print(f"{name}: {status} ({info})")

    return 0 if ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rendition")
    parser.add_argument("--env-file", default=DEFAULT_ENV_FILE)
    subparsers = parser.add_subparsers(dest="command")

    up_parser = subparsers.add_parser("up", help="Run the local rendition service")
    up_parser.add_argument("--host", default="0.0.0.0")
    up_parser.add_argument("--port", type=int, default=8083)
    up_parser.add_argument("--log-level", default="info")
    up_parser.add_argument("--dry-run", action="store_true", help="Print command only")
    up_parser.set_defaults(func=cmd_up)

    process_parser = subparsers.add_parser(
        "process", help="Generate derivatives for a local file"
    )
    process_parser.add_argument("path")
    process_parser.add_argument("--content-type")
    process_parser.add_argument("--asset-id")
    process_parser.add_argument("--original-name")
    process_parser.add_argument("--url", help="Canonical URL to record for the asset")
    process_parser.set_defaults(func=cmd_process)

    derivatives_parser = subparsers.add_parser(
        "derivatives", help="List registered derivatives of an asset"
    )
    derivatives_parser.add_argument("asset_id")
    derivatives_parser.set_defaults(func=cmd_derivatives)

    preferred_parser = subparsers.add_parser(
        "preferred", help="Print the preferred derivative URL for a platform"
    )
    preferred_parser.add_argument("asset_id")
    preferred_parser.add_argument("--platform")
    preferred_parser.set_defaults(func=cmd_preferred)

    probe_parser = subparsers.add_parser("probe", help="Probe a video with ffprobe")
    probe_parser.add_argument("path")
    probe_parser.add_argument("--timeout", type=float, default=30.0)
    probe_parser.set_defaults(func=cmd_probe)

    metadata_parser = subparsers.add_parser(
        "metadata", help="Read image dimensions and format"
    )
    metadata_parser.add_argument("path")
    metadata_parser.set_defaults(func=cmd_metadata)

    doctor_parser = subparsers.add_parser("doctor", help="Check local prerequisites")
    doctor_parser.set_defaults(func=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "command", None):
        parser.print_help()
        return 2
    env = _read_env_file(Path(args.env_file))
    if env:
        _apply_env(env)
    try:
        return args.func(args)
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
