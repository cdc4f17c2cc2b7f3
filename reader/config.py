"""Configuration loading from settings.yaml and .env, plus typed views of it."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv


def load_config(
    config_dir: str | Path | None = None,
) -> dict:
    """Load settings.yaml and .env, return merged config dict."""
    if config_dir is None:
        config_dir = Path(__file__).resolve().parent.parent / "config"
    config_dir = Path(config_dir)

    # Load .env (silently skip if missing)
    load_dotenv(config_dir / ".env")

    settings_path = config_dir / "settings.yaml"
    if not settings_path.exists():
        raise FileNotFoundError(f"Config not found: {settings_path}")

    with open(settings_path, encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    base_url = os.getenv("WIKI_BASE_URL")
    if base_url:
        cfg.setdefault("wiki", {})["base_url"] = base_url

    cfg["_secrets"] = {
        "wiki_api_token": os.getenv("WIKI_API_TOKEN", ""),
    }

    return cfg


def _section(cfg: dict, name: str) -> dict:
    return cfg.get(name) or {}


@dataclass(frozen=True)
class WikiSettings:
    base_url: str = ""
    token: str = ""
    timeout_seconds: float = 10.0

    @classmethod
    def from_config(cls, cfg: dict) -> WikiSettings:
        wiki = _section(cfg, "wiki")
        return cls(
            base_url=str(wiki.get("base_url") or ""),
            token=cfg.get("_secrets", {}).get("wiki_api_token", ""),
            timeout_seconds=float(wiki.get("timeout_seconds", cls.timeout_seconds)),
        )


@dataclass(frozen=True)
class ProgressSettings:
    """Chapter bounds, cache key prefix and reconciliation heuristics."""

    max_chapter: int = 539
    key_prefix: str = "usogui"
    recent_window: int = 2
    stale_after: int = 10
    remote_timeout_seconds: float = 3.0

    @classmethod
    def from_config(cls, cfg: dict) -> ProgressSettings:
        progress = _section(cfg, "progress")
        settings = cls(
            max_chapter=int(progress.get("max_chapter", cls.max_chapter)),
            key_prefix=str(progress.get("key_prefix") or cls.key_prefix),
            recent_window=int(progress.get("recent_window", cls.recent_window)),
            stale_after=int(progress.get("stale_after", cls.stale_after)),
            remote_timeout_seconds=float(
                progress.get("remote_timeout_seconds", cls.remote_timeout_seconds)
            ),
        )
        if settings.max_chapter < 1:
            raise ValueError(f"progress.max_chapter must be at least 1, got {settings.max_chapter}")
        if settings.recent_window > settings.stale_after:
            raise ValueError("progress.recent_window cannot exceed progress.stale_after")
        return settings


@dataclass(frozen=True)
class DisplaySettings:
    conservative_floor: int = 5
    proximity_window: int = 5

    @classmethod
    def from_config(cls, cfg: dict) -> DisplaySettings:
        return cls(
            conservative_floor=int(
                _section(cfg, "spoilers").get("conservative_floor", cls.conservative_floor)
            ),
            proximity_window=int(
                _section(cfg, "timeline").get("proximity_window", cls.proximity_window)
            ),
        )


@dataclass(frozen=True)
class StorageSettings:
    """File locations, relative paths resolved against ``root``."""

    cache_file: Path
    audit_db: Path
    log_file: str | None = None

    @classmethod
    def from_config(cls, cfg: dict, root: str | Path) -> StorageSettings:
        storage = _section(cfg, "storage")
        root = Path(root)
        return cls(
            cache_file=root / storage.get("cache_file", "data/reader_cache.json"),
            audit_db=root / storage.get("audit_db", "data/reconciliations.db"),
            log_file=storage.get("log_file"),
        )
