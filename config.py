import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        base_currency: str,
        fx_provider: str,
        fx_markup_bps: int,
        fx_timeout_secs: float,
        forecast_horizon_days: int,
        materialize_hour: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.base_currency = base_currency
        self.fx_provider = fx_provider
        self.fx_markup_bps = fx_markup_bps
        self.fx_timeout_secs = fx_timeout_secs
        self.forecast_horizon_days = forecast_horizon_days
        self.materialize_hour = materialize_hour


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("ISAVEMONEY_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "isavemoney.db"
    database_url = os.getenv("ISAVEMONEY_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("ISAVEMONEY_TIMEZONE", "Europe/Paris")
    base_currency = os.getenv("ISAVEMONEY_BASE_CURRENCY", "EUR").upper()
    fx_provider = os.getenv("ISAVEMONEY_FX_PROVIDER", "frankfurter")
    fx_markup_bps = int(os.getenv("ISAVEMONEY_FX_MARKUP_BPS", "0"))
    fx_timeout_secs = float(os.getenv("ISAVEMONEY_FX_TIMEOUT_SECS", "5"))
    forecast_horizon_days = int(os.getenv("ISAVEMONEY_FORECAST_HORIZON_DAYS", "90"))
    materialize_hour = int(os.getenv("ISAVEMONEY_MATERIALIZE_HOUR", "3"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        base_currency=base_currency,
        fx_provider=fx_provider,
        fx_markup_bps=fx_markup_bps,
        fx_timeout_secs=fx_timeout_secs,
        forecast_horizon_days=forecast_horizon_days,
        materialize_hour=materialize_hour,
    )
