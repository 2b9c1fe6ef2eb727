"""Application configuration using Pydantic settings.

Defaults target a single US equity (TSLA) polled once a minute during
regular trading hours.
"""

from pathlib import Path

from pydantic_settings import BaseSettings

from levelwatch.errors import ConfigurationError


class Settings(BaseSettings):
    # Paths
    project_root: Path = Path(__file__).resolve().parent.parent.parent
    data_dir: Path = project_root / "data"
    db_path: Path = data_dir / "levelwatch.db"

    # Database
    db_url: str = ""

    # Instrument
    symbol: str = "TSLA"

    # Price providers, tried in order
    price_providers: list[str] = ["yahoo", "yfinance", "finnhub", "alphavantage"]
    provider_timeout_seconds: float = 8.0
    yahoo_backoff_seconds: int = 60
    finnhub_api_key: str = ""
    alphavantage_api_key: str = ""

    # Publish gate
    max_publish_warnings: int = 3

    # Market hours (exchange local time)
    market_timezone: str = "America/New_York"
    market_open: str = "09:30"
    market_close: str = "16:00"

    # Health
    monitor_job_name: str = "price-monitor"
    stale_warning_minutes: int = 2
    stale_critical_minutes: int = 5

    # Scheduler
    tick_interval_minutes: int = 1
    offhours_interval_minutes: int = 15

    # Notification channels
    channels: list[str] = ["discord", "telegram", "email"]
    channel_timeout_seconds: float = 10.0
    discord_webhook_url: str = ""
    discord_alerts_webhook_url: str = ""  # falls back to discord_webhook_url
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    resend_api_key: str = ""
    email_from: str = "alerts@levelwatch.local"
    email_to: list[str] = []

    model_config = {"env_prefix": "LEVELWATCH_"}

    def model_post_init(self, __context):
        import tempfile
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            test_file = self.data_dir / ".write_test"
            test_file.touch()
            test_file.unlink()
        except (PermissionError, OSError):
            self.data_dir = Path(tempfile.gettempdir())
            self.data_dir.mkdir(parents=True, exist_ok=True)
            self.db_path = self.data_dir / "levelwatch.db"
        if not self.db_url:
            self.db_url = f"sqlite:///{self.db_path}"


settings = Settings()


def validate_monitor_config(cfg: Settings = None):
    """Refuse to start the monitor when it is guaranteed to fail."""
    cfg = cfg or settings
    if not cfg.price_providers:
        raise ConfigurationError(
            "No price providers configured. Set LEVELWATCH_PRICE_PROVIDERS."
        )
    from levelwatch.services.price_source import PROVIDERS
    known = [name for name in cfg.price_providers if name.strip().lower() in PROVIDERS]
    if not known:
        raise ConfigurationError(
            f"No known price providers in {cfg.price_providers}; "
            f"choose from {sorted(PROVIDERS)}."
        )
    if not cfg.symbol:
        raise ConfigurationError("No symbol configured. Set LEVELWATCH_SYMBOL.")
