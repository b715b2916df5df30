"""Match configuration loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import orjson
import structlog
from pydantic import ValidationError

from ..core.errors import GameValidationError
from ..core.packs import get_preset
from ..core.state import MatchConfig

LOGGER = structlog.get_logger(__name__)

CONFIG_ENV_VAR = "AIWOLF_CONFIG"
DEFAULT_CONFIG_PATH = Path("config/match.json")


def default_config_path() -> Path:
    """Path from ``AIWOLF_CONFIG`` if set, else ``config/match.json``."""
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override) if override else DEFAULT_CONFIG_PATH


def match_config_from_dict(data: Dict[str, Any]) -> MatchConfig:
    """Build a MatchConfig; a ``preset`` key expands to its pack list."""

    data = dict(data)
    preset = data.pop("preset", None)
    if preset is not None:
        if data.get("packs"):
            raise GameValidationError("Use either 'preset' or 'packs', not both")
        try:
            data["packs"] = [pack.value for pack in get_preset(str(preset))]
        except ValueError as exc:
            raise GameValidationError(str(exc)) from exc
    try:
        return MatchConfig(**data)
    except ValidationError as exc:
        raise GameValidationError(f"Invalid match configuration: {exc.errors()}") from exc


def load_match_config(path: Optional[Path] = None) -> MatchConfig:
    """Load configuration from disk, falling back to defaults when missing."""

    path = path or default_config_path()
    if not path.exists():
        LOGGER.debug("config.defaults", path=str(path))
        return MatchConfig()

    try:
        data = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as exc:
        raise GameValidationError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise GameValidationError(f"Config file {path} must contain a JSON object")

    config = match_config_from_dict(data)
    LOGGER.info("config.loaded", path=str(path), packs=[pack.value for pack in config.packs])
    return config
