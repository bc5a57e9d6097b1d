from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    gtfs_url: str = "https://www.transitchicago.com/downloads/sch_data/google_transit.zip"
    cache_dir: str = ".cache"
    feed_ttl_hours: int = 24
    index_ttl_hours: float = 24
    http_timeout_seconds: float = 60.0
    default_radius_meters: int = 1200
    default_limit: int = 12
    index_refresh_hours: int = 1

    model_config = {"env_prefix": "", "case_sensitive": False}


settings = Settings()
