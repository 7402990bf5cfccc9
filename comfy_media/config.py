"""
Service configuration loaded from a JSON file, with credentials overridable
from the environment.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .base import DEFAULT_JPEG_QUALITY, OutputFormat
from .utils import ConfigError

API_URL_ENV = "COMFYUI_API_URL"
API_KEY_ENV = "COMFYUI_API_KEY"


@dataclass
class ServiceConfig:
    api_url: str
    api_key: Optional[str]
    request_timeout_seconds: float
    max_workers: int
    output_format: OutputFormat
    timeout_minutes: int
    output_directory: Path
    log_level: str
    log_file: Path


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be an object")
    return value


def parse_config(raw: Dict[str, Any], base_dir: Optional[Path] = None) -> ServiceConfig:
    """Build a :class:`ServiceConfig` from an already-decoded config mapping.

    Relative output and log paths are resolved against ``base_dir`` (the
    config file's directory), defaulting to the working directory.
    """
    base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
    comfy = _section(raw, "comfyui")
    job = _section(raw, "job")
    output = _section(raw, "output")
    logging_config = _section(raw, "logging")

    api_url = os.getenv(API_URL_ENV) or comfy.get("api_url")
    if not api_url:
        raise ConfigError(f"No ComfyUI API URL configured (set comfyui.api_url or {API_URL_ENV})")
    api_key = os.getenv(API_KEY_ENV) or comfy.get("api_key") or None

    try:
        output_format = OutputFormat.from_name(
            job.get("output_format", "jpeg"),
            job.get("jpeg_quality", DEFAULT_JPEG_QUALITY),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(str(exc)) from exc

    try:
        timeout_minutes = int(job.get("timeout_minutes", 30))
        max_workers = int(comfy.get("max_workers", 4))
        request_timeout = float(comfy.get("request_timeout_seconds", 30))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid numeric setting: {exc}") from exc
    if timeout_minutes <= 0:
        raise ConfigError("job.timeout_minutes must be a positive integer")
    if max_workers <= 0:
        raise ConfigError("comfyui.max_workers must be a positive integer")

    return ServiceConfig(
        api_url=api_url.rstrip("/"),
        api_key=api_key,
        request_timeout_seconds=request_timeout,
        max_workers=max_workers,
        output_format=output_format,
        timeout_minutes=timeout_minutes,
        output_directory=(base_dir / output.get("directory", "ComfyOutputs")).resolve(),
        log_level=str(logging_config.get("level", "INFO")).upper(),
        log_file=(base_dir / logging_config.get("file", "logs/comfy_workflow.log")).resolve(),
    )


def load_config(config_path: str) -> ServiceConfig:
    """Load configuration from a JSON file."""
    path = Path(config_path)
    try:
        with open(path, "r") as f:
            raw = json.load(f)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Failed to load config from {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return parse_config(raw, base_dir=path.parent.resolve())
