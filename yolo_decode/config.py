from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Sequence

from .errors import ConfigError


@dataclass(frozen=True)
class PostprocessConfig:
    conf_threshold: float = 0.1
    iou_threshold: float = 0.4
    # >1 decodes output layers on a thread pool before the NMS barrier
    max_workers: int = 1

    def __post_init__(self) -> None:
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ConfigError("conf_threshold must be in [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ConfigError("iou_threshold must be in [0, 1]")
        if self.max_workers < 1:
            raise ConfigError("max_workers must be >= 1")


@dataclass(frozen=True)
class InputConfig:
    """Pixel normalisation: (pixel - input_mean) / input_std."""

    input_mean: float = 0.0
    input_std: float = 255.0

    def __post_init__(self) -> None:
        if self.input_std == 0:
            raise ConfigError("input_std must be non-zero")


_STR_KEYS = {"model", "image", "classes", "anchors", "onnx_providers", "output_layout"}
_INT_KEYS = {"threads", "count", "warmup_runs", "max_workers"}
_FLOAT_KEYS = {"input_mean", "input_std", "conf_threshold", "iou_threshold"}
_BOOL_KEYS = {"strict_anchors", "verbose"}


def load_run_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Run config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid run config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Run config must be a JSON object")
    return payload


def collect_cli_dests(parser: argparse.ArgumentParser, argv: Sequence[str]) -> set[str]:
    dests: set[str] = set()
    for opt, action in parser._option_string_actions.items():
        for arg in argv:
            if arg == opt or arg.startswith(f"{opt}="):
                dests.add(action.dest)
                break
    return dests


def apply_run_config(
    *,
    args: argparse.Namespace,
    payload: Dict[str, Any],
    cli_dests: set[str],
    parser: argparse.ArgumentParser,
) -> None:
    """
    Copy config values onto parsed args. Keys are the parser's option dests;
    flags given on the command line win.
    """

    allowed = {action.dest for action in parser._actions if action.dest != "help"}
    if "config" in payload:
        raise ConfigError("Run config must not include the 'config' key")
    unknown = sorted(k for k in payload.keys() if k not in allowed)
    if unknown:
        raise ConfigError(f"Unknown run config keys: {unknown}")
    choices = {action.dest: action.choices for action in parser._actions if action.choices}

    for key, value in payload.items():
        if key in cli_dests or value is None:
            continue
        if key == "onnx_providers" and isinstance(value, list):
            if not value or not all(isinstance(v, str) and v.strip() for v in value):
                raise ConfigError("onnx_providers must be a non-empty string or list of strings")
            setattr(args, key, ",".join(v.strip() for v in value))
            continue
        if key in _STR_KEYS:
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"{key} must be a non-empty string")
            if key in choices and value not in choices[key]:
                raise ConfigError(f"{key} must be one of {sorted(choices[key])}, got {value!r}")
            setattr(args, key, value)
        elif key in _BOOL_KEYS:
            if not isinstance(value, bool):
                raise ConfigError(f"{key} must be a boolean")
            setattr(args, key, value)
        elif key in _INT_KEYS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{key} must be an integer")
            if isinstance(value, float) and not value.is_integer():
                raise ConfigError(f"{key} must be an integer")
            setattr(args, key, int(value))
        elif key in _FLOAT_KEYS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{key} must be a number")
            setattr(args, key, float(value))
        else:
            raise ConfigError(f"Unsupported run config key: {key}")
