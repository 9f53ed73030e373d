import os
import yaml
from dataclasses import dataclass
from typing import Optional

from errors import ConfigError

DEFAULT_CONFIG = os.path.join(os.path.dirname(__file__), "roadmap.yaml")


@dataclass(frozen=True)
class Settings:
    endpoint: str
    user_agent: str = "Mozilla/5.0"
    page_size: int = 20
    timeout_seconds: float = 10
    max_pages: int = 500
    window_start: str = "2020-01-01"
    window_end: str = "2050-12-31"
    db_path: str = "roadmap_watcher.db"
    export_dir: str = "reports"


def _resolve(base_dir: str, path: str) -> str:
    return path if os.path.isabs(path) else os.path.join(base_dir, path)


def load_settings(path: Optional[str] = None) -> Settings:
    path = path or os.getenv("ROADMAP_CONFIG") or DEFAULT_CONFIG
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    if "endpoint" not in data:
        raise ConfigError(f"Config {path} is missing 'endpoint'")

    base_dir = os.path.dirname(os.path.abspath(path))
    window = data.get("window") or {}
    timeout = os.getenv("ROADMAP_TIMEOUT") or data.get("timeout_seconds", 10)

    try:
        return Settings(
            endpoint=data["endpoint"],
            user_agent=data.get("user_agent", "Mozilla/5.0"),
            page_size=int(data.get("page_size", 20)),
            timeout_seconds=float(timeout),
            max_pages=int(data.get("max_pages", 500)),
            window_start=str(window.get("start", "2020-01-01")),
            window_end=str(window.get("end", "2050-12-31")),
            db_path=os.getenv("ROADMAP_DB_PATH") or _resolve(base_dir, data.get("db_path", "roadmap_watcher.db")),
            export_dir=os.getenv("ROADMAP_EXPORT_DIR") or _resolve(base_dir, data.get("export_dir", "reports")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in config {path}: {e}") from e
