from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    database_url: str = 'sqlite:///./bar_inventory.sqlite3'
    inventory_store: str = 'memory'
    history_domain: str = 'bar'

    session_cookie_name: str = 'bar_inventory_session'
    session_ttl_minutes: int = 480
    session_cookie_secure: bool = False
    session_cookie_samesite: str = 'lax'

    default_low_stock_threshold: int = 5
    default_unit: str = 'bottle'
    default_category: str = 'liquor'

    quick_adjust_min_search_chars: int = 2
    quick_adjust_max_results: int = 10
    quick_adjust_recent_limit: int = 10
    quick_adjust_frequent_limit: int = 5
    adjustment_rankings_path: str | None = None

    alert_mode: str = 'interval'
    alert_interval_minutes: int = 60
    alert_weekday: int = 0
    alert_time: str = '09:00'
    alerts_out_of_stock: bool = True
    alerts_low_stock: bool = True
    alerts_enabled: bool = True

    seed_demo_data: bool = False

    log_level: str = 'INFO'

    @property
    def database_url_normalized(self) -> str:
        url = self.database_url.strip()
        if url.startswith('postgres://'):
            return 'postgresql+psycopg://' + url[len('postgres://') :]
        if url.startswith('postgresql://'):
            return 'postgresql+psycopg://' + url[len('postgresql://') :]
        return url


settings = Settings()
