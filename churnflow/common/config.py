"""
Configuration Management for ChurnFlow

Loads configuration from ~/.churnflow/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger("churnflow.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".churnflow"
CONFIG_PATH = CONFIG_DIR / "config.json"

CHURN_HOME = Path.home() / "Churn"


@dataclass
class TrackingConfig:
    """Where tracker documents and the crossref registry live"""
    crossref_path: str = str(CHURN_HOME / "Tracking" / "crossref.json")
    collections_path: str = str(CHURN_HOME / "Collections")
    tracking_path: str = str(CHURN_HOME / "Tracking")


@dataclass
class LLMConfig:
    """LLM provider configuration for capture inference"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    temperature: float = 0.3
    max_tokens: int = 1500
    timeout: float = 30.0  # seconds; bounds the only blocking call in a capture

    @property
    def model(self) -> str:
        return {
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
            "google": self.google_model,
        }.get(self.provider, "")


@dataclass
class CaptureConfig:
    """Routing policy"""
    confidence_threshold: float = 0.7
    review_trackers: List[str] = field(
        default_factory=lambda: ["review", "inbox", "churn-system"]
    )


@dataclass
class ChurnConfig:
    """Main ChurnFlow configuration"""
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_tracking_config(data: dict) -> TrackingConfig:
    """Parse tracking section, accepting flat churn.config.json keys"""
    tracking_data = data.get("tracking", {})
    defaults = TrackingConfig()
    return TrackingConfig(
        crossref_path=tracking_data.get("crossref_path") or data.get("crossrefPath", defaults.crossref_path),
        collections_path=tracking_data.get("collections_path") or data.get("collectionsPath", defaults.collections_path),
        tracking_path=tracking_data.get("tracking_path") or data.get("trackingPath", defaults.tracking_path),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse LLM configuration.

    Reads from ``data["llm"]`` first. Without that section, falls back to the
    flat ``aiProvider`` / ``aiApiKey`` keys of a churn.config.json file, where
    the single key belongs to whichever provider is selected.
    """
    llm_data = data.get("llm")

    if llm_data is not None:
        defaults = LLMConfig()
        return LLMConfig(
            provider=llm_data.get("provider", defaults.provider),
            anthropic_api_key=llm_data.get("anthropic_api_key", ""),
            anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
            openai_api_key=llm_data.get("openai_api_key", ""),
            openai_model=llm_data.get("openai_model", defaults.openai_model),
            google_api_key=llm_data.get("google_api_key", ""),
            google_model=llm_data.get("google_model", defaults.google_model),
            temperature=float(llm_data.get("temperature", defaults.temperature)),
            max_tokens=int(llm_data.get("max_tokens", defaults.max_tokens)),
            timeout=float(llm_data.get("timeout", defaults.timeout)),
        )

    config = LLMConfig(provider=data.get("aiProvider", "openai"))
    api_key = data.get("aiApiKey", "")
    if api_key and hasattr(config, f"{config.provider}_api_key"):
        setattr(config, f"{config.provider}_api_key", api_key)
    return config


def _parse_capture_config(data: dict) -> CaptureConfig:
    """Parse capture section"""
    capture_data = data.get("capture", {})
    defaults = CaptureConfig()
    threshold = capture_data.get(
        "confidence_threshold",
        data.get("confidenceThreshold", defaults.confidence_threshold),
    )
    return CaptureConfig(
        confidence_threshold=float(threshold),
        review_trackers=list(capture_data.get("review_trackers", defaults.review_trackers)),
    )


def _env_float(name: str, current: float) -> float:
    """Numeric env override; an unparseable value is ignored with a warning"""
    raw = os.getenv(name)
    if not raw:
        return current
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, keeping %s", name, raw, current)
        return current


def load_config(path: Optional[Path] = None) -> ChurnConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (including a local .env file)
    2. Config file (~/.churnflow/config.json)
    3. Default values
    """
    load_dotenv()
    config = ChurnConfig()
    config_path = Path(path) if path else CONFIG_PATH

    if config_path.exists():
        try:
            with open(config_path) as f:
                data = json.load(f)

            config.tracking = _parse_tracking_config(data)
            config.llm = _parse_llm_config(data)
            config.capture = _parse_capture_config(data)
        except (json.JSONDecodeError, IOError, ValueError, TypeError) as e:
            logger.warning("Failed to load config file %s: %s", config_path, e)

    if os.getenv("CHURN_CROSSREF_PATH"):
        config.tracking.crossref_path = os.getenv("CHURN_CROSSREF_PATH")
    if os.getenv("CHURN_COLLECTIONS_PATH"):
        config.tracking.collections_path = os.getenv("CHURN_COLLECTIONS_PATH")
    if os.getenv("CHURN_TRACKING_PATH"):
        config.tracking.tracking_path = os.getenv("CHURN_TRACKING_PATH")
    config.capture.confidence_threshold = _env_float(
        "CHURN_CONFIDENCE_THRESHOLD", config.capture.confidence_threshold
    )
    config.llm.timeout = _env_float("CHURN_LLM_TIMEOUT", config.llm.timeout)

    # LLM env var overrides (track env-sourced keys)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "CHURN_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: ChurnConfig, path: Optional[Path] = None) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    config_path = Path(path) if path else CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "temperature": config.llm.temperature,
        "max_tokens": config.llm.max_tokens,
        "timeout": config.llm.timeout,
    }
    for key in ("anthropic_api_key", "openai_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "tracking": {
            "crossref_path": config.tracking.crossref_path,
            "collections_path": config.tracking.collections_path,
            "tracking_path": config.tracking.tracking_path,
        },
        "llm": llm_section,
        "capture": {
            "confidence_threshold": config.capture.confidence_threshold,
            "review_trackers": config.capture.review_trackers,
        },
    }

    with open(config_path, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    config_path.chmod(0o600)
