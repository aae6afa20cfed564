"""
Loads and handles config from config.yml
Storage and alerting secrets (GITHUB_TOKEN, SLACK_WEBHOOK_URL, ...) are loaded from .env for security
"""
import logging
import os
from typing import List, Dict, Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from core.errors import ConfigurationError
from core.scoring import DEFAULT_LOCALITIES, DEFAULT_WEIGHTS

logger = logging.getLogger(__name__)


class FeedConfig(BaseModel):
    """Configuration for a single content source."""
    url: str
    name: str
    type: str = "rss"
    enabled: bool = True


class EvaluationConfig(BaseModel):
    batch_size: int = 3
    batch_delay_seconds: float = 2.0
    weights: Dict[str, float] = dict(DEFAULT_WEIGHTS)
    localities: List[str] = list(DEFAULT_LOCALITIES)
    multi_locality_bonus: float = 2.0
    blank_word_threshold: int = 10


class RewritingConfig(BaseModel):
    max_candidates: int = 12
    min_words: int = 40
    max_words: int = 75
    exclude_duplicates: bool = False


class FactCheckConfig(BaseModel):
    pass_threshold: int = 20


class SelectionConfig(BaseModel):
    top_k: int = 5
    low_article_threshold: int = 3


class ImagesConfig(BaseModel):
    download_timeout: float = 15.0
    listing_timeout: float = 20.0
    max_bytes: int = 5 * 1024 * 1024
    listing_width: int = 575
    listing_height: int = 325
    jpeg_quality: int = 85
    ephemeral_cdn_patterns: List[str] = ["fbcdn.net", "scontent", "cdninstagram.com"]


class EventsConfig(BaseModel):
    days: int = 3
    per_day: int = 8
    # Calendar REST endpoint, e.g. https://example.org/wp-json/tribe/events/v1/events
    sync_url: Optional[str] = None
    sync_days: int = 7
    sync_prefix: str = "calendar"
    sync_user_agent: str = "Local News Curator (event calendar sync)"


class ListingsConfig(BaseModel):
    enabled: bool = True
    quotas: Dict[str, int] = {"Local": 1, "Greater": 2}


class ScheduleConfig(BaseModel):
    timezone: str = "America/Chicago"
    window_minutes: int = 15
    rss_processing_time: str = "20:30"
    rss_processing_enabled: bool = True
    event_population_enabled: bool = True
    subject_generation_enabled: bool = True


class RoadWorkConfig(BaseModel):
    enabled: bool = False
    area: str = "St. Cloud, MN"
    max_items: int = 9
    model: Optional[str] = None


class StorageConfig(BaseModel):
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_OWNER: Optional[str] = None
    GITHUB_REPO: Optional[str] = None
    branch: str = "main"

    @property
    def configured(self) -> bool:
        return bool(self.GITHUB_TOKEN and self.GITHUB_OWNER and self.GITHUB_REPO)


class Config(BaseModel):
    # Core
    DATABASE_PATH: str

    # Ollama
    OLLAMA_BASE_URL: str
    OLLAMA_MODEL: str
    OLLAMA_TIMEOUT: float = 30.0
    OLLAMA_TEMPERATURE: float = 0.3

    # Alerts
    SLACK_WEBHOOK_URL: Optional[str] = None

    evaluation: EvaluationConfig = EvaluationConfig()
    rewriting: RewritingConfig = RewritingConfig()
    fact_check: FactCheckConfig = FactCheckConfig()
    selection: SelectionConfig = SelectionConfig()
    images: ImagesConfig = ImagesConfig()
    events: EventsConfig = EventsConfig()
    listings: ListingsConfig = ListingsConfig()
    schedule: ScheduleConfig = ScheduleConfig()
    road_work: RoadWorkConfig = RoadWorkConfig()
    storage: StorageConfig = StorageConfig()

    feeds: List[FeedConfig] = []


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _get_config_path() -> str:
    """Get the path to config.yml, handling different working directories."""
    env_path = os.getenv("CURATOR_CONFIG")
    if env_path:
        if not os.path.exists(env_path):
            raise ConfigurationError("Config file not found", {"path": env_path})
        return env_path

    # Try relative path first
    if os.path.exists('resources/config.yml'):
        return 'resources/config.yml'

    # Try from project root
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    config_path = os.path.join(project_root, 'resources', 'config.yml')
    if os.path.exists(config_path):
        return config_path

    raise ConfigurationError("Cannot find resources/config.yml")


def _parse_feeds(data: List[Dict[str, Any]]) -> List[FeedConfig]:
    feeds = []
    for entry in data or []:
        try:
            feeds.append(FeedConfig(
                url=entry["url"],
                name=entry.get("name") or entry["url"],
                type=entry.get("type", "rss"),
                enabled=_bool(entry.get("enabled", True)),
            ))
        except Exception as e:
            logger.error(f"Failed to parse feed entry {entry!r}: {e}")
    return feeds


def parse_config(config: Dict[str, Any]) -> Config:
    """Build a Config from already-loaded YAML data and the process environment."""
    try:
        return Config(
            DATABASE_PATH=config.get("DATABASE_PATH", "data/curator.db"),

            OLLAMA_BASE_URL=config.get("OLLAMA_BASE_URL", "http://localhost:11434"),
            OLLAMA_MODEL=config.get("OLLAMA_MODEL", "llama3.1:8b"),
            OLLAMA_TIMEOUT=float(config.get("OLLAMA_TIMEOUT", 30.0)),
            OLLAMA_TEMPERATURE=float(config.get("OLLAMA_TEMPERATURE", 0.3)),

            SLACK_WEBHOOK_URL=os.getenv("SLACK_WEBHOOK_URL"),

            evaluation=EvaluationConfig(**(config.get("evaluation") or {})),
            rewriting=RewritingConfig(**(config.get("rewriting") or {})),
            fact_check=FactCheckConfig(**(config.get("fact_check") or {})),
            selection=SelectionConfig(**(config.get("selection") or {})),
            images=ImagesConfig(**(config.get("images") or {})),
            events=EventsConfig(**(config.get("events") or {})),
            listings=ListingsConfig(**(config.get("listings") or {})),
            schedule=ScheduleConfig(**(config.get("schedule") or {})),
            road_work=RoadWorkConfig(**(config.get("road_work") or {})),
            storage=StorageConfig(
                GITHUB_TOKEN=os.getenv("GITHUB_TOKEN"),
                GITHUB_OWNER=os.getenv("GITHUB_OWNER"),
                GITHUB_REPO=os.getenv("GITHUB_REPO"),
                branch=(config.get("storage") or {}).get("branch", "main"),
            ),

            feeds=_parse_feeds(config.get("feeds", [])),
        )
    except ValueError as e:
        raise ConfigurationError("Invalid configuration", {"error": str(e)}) from e


def load_config() -> Config:
    """Load configuration from config.yml and secrets from .env."""
    # Load .env for sensitive credentials
    load_dotenv()

    config_path = _get_config_path()

    with open(config_path, 'r') as file:
        config = yaml.safe_load(file) or {}

    return parse_config(config)


def get_enabled_feeds(config: Config) -> List[FeedConfig]:
    """Get only enabled feeds from the config."""
    return [feed for feed in config.feeds if feed.enabled]
