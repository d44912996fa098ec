import os
from pathlib import Path

import yaml
from dotenv import load_dotenv


def _project_root() -> Path:
    # clipflow/config/config.py -> clipflow/config -> clipflow -> repo root
    return Path(__file__).resolve().parents[2]


def get_default_config():
    """Get default configuration"""
    project_root = _project_root()

    return {
        # Persisted provider settings (endpoint, key, opt-in, last selection)
        "settings_file": str(project_root / "data" / "settings.toml"),
        # Session store
        "sessions_db": str(project_root / "data" / "sessions.db"),
        # Demo clips and thumbnails
        "results_dir": str(project_root / "results"),

        # Remote provider client
        "request_timeout_sec": 300,
        "verify_video_urls": False,

        # Demo provider
        "demo_delay_sec": 1.0,
        "demo_fps": 2,

        # Progress ticker
        "progress_tick_sec": 1.0,

        # Logging
        "log_file": str(project_root / "logs" / "clipflow.log"),
        "log_console": False,
    }


_ENV_OVERRIDES = {
    "CLIPFLOW_SETTINGS_FILE": ("settings_file", str),
    "CLIPFLOW_SESSIONS_DB": ("sessions_db", str),
    "CLIPFLOW_RESULTS_DIR": ("results_dir", str),
    "CLIPFLOW_REQUEST_TIMEOUT_SEC": ("request_timeout_sec", int),
    "CLIPFLOW_VERIFY_VIDEO_URLS": ("verify_video_urls", lambda v: v.lower() == "true"),
    "CLIPFLOW_DEMO_DELAY_SEC": ("demo_delay_sec", float),
    "CLIPFLOW_DEMO_FPS": ("demo_fps", int),
    "CLIPFLOW_PROGRESS_TICK_SEC": ("progress_tick_sec", float),
    "CLIPFLOW_LOG_FILE": ("log_file", str),
    "CLIPFLOW_LOG_CONSOLE": ("log_console", lambda v: v.lower() == "true"),
}


def _init_env():
    project_root = _project_root()
    package_root = project_root / "clipflow"
    for env_file in (package_root / ".env", project_root / ".env"):
        if env_file.exists():
            load_dotenv(dotenv_path=str(env_file), override=False)
            break


def load_config(config_path=None, environ=None):
    """
    Build the effective configuration.

    Order: built-in defaults, then the YAML file (clipflow/config/config.yaml
    unless config_path is given), then CLIPFLOW_* environment variables.
    """
    config = get_default_config()

    if config_path is None:
        config_path = Path(__file__).resolve().parent / "config.yaml"
    config_path = Path(config_path)
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")
        for key, value in file_config.items():
            if key in config:
                config[key] = value

    if environ is None:
        _init_env()
        environ = os.environ
    for env_key, (key, cast) in _ENV_OVERRIDES.items():
        raw = environ.get(env_key)
        if raw is None or raw == "":
            continue
        try:
            config[key] = cast(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid value for {env_key}: {raw!r}") from exc

    return config
