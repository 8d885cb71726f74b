from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from gantry_headless.kinematics import GantryGeometry

DEFAULT_CONFIG_FILENAME = "gantry_service.json"


@dataclass
class ServiceConfig:
    host: str = "0.0.0.0"
    port: int = 8766
    api_token: str = ""

    tick_hz: float = 6.0

    area_width: int = 17
    area_height: int = 17
    num_horizontal_pistons: int = 2
    num_vertical_pistons: int = 2
    ceiling_height_m: float = 20.0
    floor_height_m: float = 2.5
    max_horizontal_extension_m: float = 10.0
    horizontal_speed_limit_mps: float = 1.0
    vertical_speed_limit_mps: float = 1.0

    sim_start_x: float = 8.0
    sim_start_y: float = 8.0
    sim_start_z: float = 3.0

    def geometry(self) -> GantryGeometry:
        return GantryGeometry(
            area_width=self.area_width,
            area_height=self.area_height,
            num_horizontal_pistons=self.num_horizontal_pistons,
            num_vertical_pistons=self.num_vertical_pistons,
            ceiling_height_m=self.ceiling_height_m,
            floor_height_m=self.floor_height_m,
            max_horizontal_extension_m=self.max_horizontal_extension_m,
            horizontal_speed_limit_mps=self.horizontal_speed_limit_mps,
            vertical_speed_limit_mps=self.vertical_speed_limit_mps,
        )


# (field, env override, type, lower bound, upper bound); the JSON key is the field name.
_TEXT_SETTINGS: Tuple[Tuple[str, str], ...] = (
    ("host", "GANTRY_SERVICE_HOST"),
    ("api_token", "GANTRY_SERVICE_API_TOKEN"),
)
_NUMERIC_SETTINGS: Tuple[Tuple[str, str, type, Optional[float], Optional[float]], ...] = (
    ("port", "GANTRY_SERVICE_PORT", int, 1, 65535),
    ("tick_hz", "GANTRY_TICK_HZ", float, 1.0, 60.0),
    ("area_width", "GANTRY_AREA_WIDTH", int, 3, 101),
    ("area_height", "GANTRY_AREA_HEIGHT", int, 3, 101),
    ("num_horizontal_pistons", "GANTRY_HORIZONTAL_PISTONS", int, 1, 10),
    ("num_vertical_pistons", "GANTRY_VERTICAL_PISTONS", int, 1, 10),
    ("ceiling_height_m", "GANTRY_CEILING_HEIGHT_M", float, None, None),
    ("floor_height_m", "GANTRY_FLOOR_HEIGHT_M", float, None, None),
    ("max_horizontal_extension_m", "GANTRY_MAX_EXTENSION_M", float, None, None),
    # Piston speeds stay at or below the rated 1 m/s.
    ("horizontal_speed_limit_mps", "GANTRY_HORIZONTAL_LIMIT_MPS", float, 0.05, 1.0),
    ("vertical_speed_limit_mps", "GANTRY_VERTICAL_LIMIT_MPS", float, 0.05, 1.0),
    ("sim_start_x", "GANTRY_SIM_START_X", float, None, None),
    ("sim_start_y", "GANTRY_SIM_START_Y", float, None, None),
    ("sim_start_z", "GANTRY_SIM_START_Z", float, None, None),
)


def _read_json_object(path: Path) -> Tuple[Dict[str, Any], str]:
    if not path.is_file():
        return {}, ""
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        return {}, f"Failed reading {path.name}: {exc}"
    except json.JSONDecodeError as exc:
        return {}, f"Invalid JSON in {path.name}: {exc}"
    if not isinstance(parsed, dict):
        return {}, f"{path.name} must contain a JSON object."
    return parsed, ""


def _lookup(raw: Dict[str, Any], env_name: str, key: str) -> Any:
    """Non-blank environment value first, then the JSON value (None when absent)."""
    env_val = os.environ.get(env_name, "").strip()
    if env_val:
        return env_val
    return raw.get(key)


def _coerce_number(value: Any, kind: type, default: Any, lo: Optional[float], hi: Optional[float]) -> Any:
    try:
        number = float(kind(value))
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    if lo is not None:
        number = max(lo, number)
    if hi is not None:
        number = min(hi, number)
    return kind(number)


def load_service_config(base_dir: Path | None = None) -> Tuple[ServiceConfig, str]:
    """
    Build the service settings from defaults, an optional JSON file and
    GANTRY_* environment overrides.

    The JSON file is gantry_service.json under base_dir (the current directory
    by default) unless GANTRY_SERVICE_CONFIG names another path. Unparseable
    or non-finite numbers keep their default; bounded ones are clipped.
    Returns the config and a warning string, empty when all went well.
    """
    root = base_dir if base_dir is not None else Path.cwd()
    override = os.environ.get("GANTRY_SERVICE_CONFIG", "").strip()
    config_path = Path(override).expanduser() if override else root / DEFAULT_CONFIG_FILENAME

    raw, warning = _read_json_object(config_path)
    notes: List[str] = [warning] if warning else []

    defaults = ServiceConfig()
    values: Dict[str, Any] = {}
    for name, env_name in _TEXT_SETTINGS:
        value = _lookup(raw, env_name, name)
        text = "" if value is None else str(value).strip()
        values[name] = text or getattr(defaults, name)
    for name, env_name, kind, lo, hi in _NUMERIC_SETTINGS:
        default = getattr(defaults, name)
        value = _lookup(raw, env_name, name)
        values[name] = default if value is None else _coerce_number(value, kind, default, lo, hi)
    cfg = ServiceConfig(**values)

    if cfg.ceiling_height_m <= cfg.floor_height_m:
        notes.append("ceiling_height_m must exceed floor_height_m; using defaults.")
        cfg.ceiling_height_m = defaults.ceiling_height_m
        cfg.floor_height_m = defaults.floor_height_m

    return cfg, " ".join(notes).strip()
