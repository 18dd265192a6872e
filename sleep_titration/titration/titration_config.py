# titration_config.py
"""
Titration Config

Single responsibility:
- Provide the numeric parameters of the sleep-restriction algorithm
- Optionally override them from resources/config_titration.yaml

Notes:
- This module does NOT do any sleep math.
- Unknown YAML keys are ignored with a warning so a typo never changes behavior silently.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from sleep_titration.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TitrationConfig:
    """
    Defaults match the clinical protocol. YAML example:

    titration:
      adjustment_step_minutes: 15
      increase_threshold_percent: 85
    """
    min_time_in_bed_minutes: int = 300   # 5h floor
    max_time_in_bed_minutes: int = 540   # 9h ceiling
    adjustment_step_minutes: int = 15
    min_entries: int = 5
    lookback_days: int = 7

    increase_threshold_percent: float = 85.0  # SE >= 85 -> increase
    maintain_threshold_percent: float = 80.0  # SE >= 80 -> maintain
    flag_threshold_percent: float = 70.0      # SE < 70 -> clinician review

    tight_start_threshold_percent: float = 75.0  # baseline SE below this starts from TST
    tight_start_buffer_minutes: int = 30

    adherence_tolerance_minutes: int = 30
    week_start_weekday: int = 0  # date.weekday(): 0 = Monday
    backfill_limit_days: int = 7
    inter_user_delay_seconds: float = 0.1

    def clamp_time_in_bed(self, minutes: int) -> int:
        return max(self.min_time_in_bed_minutes, min(self.max_time_in_bed_minutes, minutes))


def _default_config_path() -> Path:
    env_path = os.environ.get("SLEEP_TITRATION_CONFIG")
    if env_path:
        return Path(env_path)
    # parents[2] = project root (file is in sleep_titration/titration/)
    return Path(__file__).resolve().parents[2] / "resources" / "config_titration.yaml"


def load_titration_config(config_path: Optional[Path] = None) -> TitrationConfig:
    """
    Builds a TitrationConfig from defaults plus the optional YAML override file.
    A missing file means defaults; an unreadable file raises.
    """
    path = config_path or _default_config_path()
    config = TitrationConfig()

    if not path.exists():
        logger.debug(f"No titration config at {path}, using defaults")
        return config

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    section: Dict[str, Any] = raw.get("titration", raw) if isinstance(raw, dict) else {}
    if not isinstance(section, dict):
        raise ValueError(f"Titration config at {path} must be a mapping")

    known = {f.name for f in fields(TitrationConfig)}
    overrides = {k: v for k, v in section.items() if k in known}
    for key in sorted(set(section) - known):
        logger.warning(f"Ignoring unknown titration config key '{key}' in {path}")

    config = replace(config, **overrides)
    if config.min_time_in_bed_minutes > config.max_time_in_bed_minutes:
        raise ValueError(
            f"min_time_in_bed_minutes ({config.min_time_in_bed_minutes}) exceeds "
            f"max_time_in_bed_minutes ({config.max_time_in_bed_minutes})"
        )

    logger.info(f"Titration config loaded from {path} ({len(overrides)} overrides)")
    return config


# Singleton accessor
_titration_config: Optional[TitrationConfig] = None


def get_titration_config() -> TitrationConfig:
    global _titration_config
    if _titration_config is None:
        _titration_config = load_titration_config()
    return _titration_config


def reset_titration_config() -> None:
    global _titration_config
    _titration_config = None
