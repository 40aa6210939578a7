"""Configuration management for the Flow Facilitator Engine.

Provides centralized config with JSON persistence at ~/.flow-facilitator/config.json.
The oracle API key is read from the environment and never written to disk.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

from flowstate.scoring.policy import SCORE_PRESETS
from flowstate.scoring.pose import POSE_PRESETS

# Base directories
APP_DIR = Path.home() / ".flow-facilitator"
CONFIG_PATH = APP_DIR / "config.json"
DB_PATH = APP_DIR / "history.db"

# Model directory (next to the flowstate/ package)
MODELS_DIR = Path(__file__).parent.parent / "models"

# Local relevance model (GGUF for llama-cpp-python)
LOCAL_RELEVANCE_MODEL = MODELS_DIR / "qwen2.5-3b-instruct-q4_k_m.gguf"

# MediaPipe
FACE_LANDMARKER = MODELS_DIR / "face_landmarker.task"

ORACLE_API_KEY_ENV = "GROQ_API_KEY"

DEFAULT_GOAL = (
    "General Productivity: Career related learning videos, "
    "exam related learning videos"
)

DEFAULT_BLOCKLIST = [
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "tiktok.com",
    "reddit.com",
]

ORACLE_BACKENDS = ("remote", "local", "none")


def get_oracle_api_key() -> Optional[str]:
    """Return the relevance oracle API key from the environment, if set."""
    key = os.environ.get(ORACLE_API_KEY_ENV, "").strip()
    return key or None


@dataclass
class EngineConfig:
    """Engine configuration with defaults."""

    # Goal used until the user sets one
    default_goal: str = DEFAULT_GOAL

    # Scoring
    score_policy: str = "time_curve"  # time_curve, event_delta
    pose_preset: str = "sensitive"  # sensitive, relaxed
    flow_threshold: float = 80.0
    initial_score: float = 0.0

    # Grace-period buffer (consecutive bad pose ticks)
    grace_window_ticks: int = 5
    penalty_zone_ticks: int = 10

    # Activity
    active_window_seconds: float = 5.0
    keystroke_throttle_seconds: float = 2.0

    # Timers (seconds)
    pose_interval: float = 1.0
    passive_interval: float = 60.0
    content_max_attempts: int = 10
    content_retry_interval: float = 1.0

    # Relevance oracle
    oracle_backend: str = "remote"  # remote, local, none
    oracle_url: str = "https://api.groq.com/openai/v1/chat/completions"
    oracle_model: str = "llama-3.3-70b-versatile"
    oracle_timeout: float = 10.0
    description_snippet_chars: int = 300
    distraction_score_threshold: int = 4
    blocklist: list[str] = field(default_factory=lambda: list(DEFAULT_BLOCKLIST))
    local_model_path: str = str(LOCAL_RELEVANCE_MODEL)
    llm_n_ctx: int = 2048

    # Camera settings
    camera_enabled: bool = True
    camera_index: int = 0

    # Surface dispatch
    surface_send_timeout: float = 2.0

    # Server settings
    engine_port: int = 18181

    def to_dict(self) -> dict:
        """Convert to a plain dict for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> EngineConfig:
        """Create from a dict, ignoring unknown keys."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)

    def validate(self) -> None:
        """Raise ValueError if a preset or backend name is unknown."""
        if self.score_policy not in SCORE_PRESETS:
            raise ValueError(f"Unknown score policy: {self.score_policy!r}")
        if self.pose_preset not in POSE_PRESETS:
            raise ValueError(f"Unknown pose preset: {self.pose_preset!r}")
        if self.oracle_backend not in ORACLE_BACKENDS:
            raise ValueError(f"Unknown oracle backend: {self.oracle_backend!r}")
        if not 0 < self.grace_window_ticks <= self.penalty_zone_ticks:
            raise ValueError("grace_window_ticks must be in 1..penalty_zone_ticks")


def load_config() -> EngineConfig:
    """Load configuration from disk, or return defaults."""
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH, "r") as f:
                data = json.load(f)
            return EngineConfig.from_dict(data)
        except (json.JSONDecodeError, OSError, TypeError):
            pass
    return EngineConfig()


def save_config(config: EngineConfig) -> None:
    """Save configuration to disk."""
    APP_DIR.mkdir(parents=True, exist_ok=True)
    with open(CONFIG_PATH, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
