"""
Configuration for opaquesync.

Values come from ``config/default.yaml`` under the project directory,
overridden by ``OPAQUESYNC_*`` environment variables (a ``.env`` file in the
project directory is loaded first).
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from opaquesync.engine.models import EngineDefinition

PROJECT_DIR = Path(os.getenv("OPAQUESYNC_PROJECT_DIR", Path.cwd()))
DATA_DIR = Path(os.getenv("OPAQUESYNC_DATA_DIR", PROJECT_DIR / ".opaquesync"))

CONFIG_FILE = PROJECT_DIR / "config" / "default.yaml"
ENV_PREFIX = "OPAQUESYNC_"


class ConfigModel(BaseModel):
    """Runtime settings for the synchronizer, cache and engine clients."""

    engines: list[EngineDefinition] = Field(default_factory=list)

    # Number of cache-scope constructions an entry may sit untouched
    idle_eviction_threshold: int = 2

    # Added to each engine call's timeout when budgeting a replay
    replay_margin_seconds: float = 30.0

    question_base_url: str = "http://localhost:8000/question"
    resource_dir: str = str(DATA_DIR / "resources")
    resource_base_url: str = "http://localhost:8000/resources"

    log_level: str = "INFO"

    def get_engine(self, engine_id: str) -> Optional[EngineDefinition]:
        return next((e for e in self.engines if e.engine_id == engine_id), None)


def _env_overrides() -> dict[str, Any]:
    """Collect scalar overrides such as OPAQUESYNC_LOG_LEVEL=DEBUG."""
    overrides: dict[str, Any] = {}
    for name in ConfigModel.model_fields:
        if name == "engines":
            continue
        value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if value is not None:
            overrides[name] = value
    return overrides


def load_config(path: Optional[Path] = None) -> ConfigModel:
    """
    Load configuration from YAML and the environment.

    Args:
        path: YAML file to read; defaults to config/default.yaml.

    Returns:
        A validated ConfigModel. Missing files yield defaults.
    """
    load_dotenv(PROJECT_DIR / ".env")

    data: dict[str, Any] = {}
    config_path = path or CONFIG_FILE
    if config_path.exists():
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}

    data.update(_env_overrides())
    return ConfigModel.model_validate(data)


CONFIG = load_config()
