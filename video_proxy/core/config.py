from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    PROJECT_NAME: str = "Video Proxy"
    API_PREFIX: str = "/api"
    CORS_ORIGINS: list[str] = ["*"]

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Upstream requests
    USER_AGENT: str = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36'
    UPSTREAM_TIMEOUT: Optional[float] = None

    # Extraction settings
    MAX_REDIRECT_HOPS: int = 5
    MIN_HTML_LENGTH: int = 1000
    YTDLP_FALLBACK: bool = False

    # Streaming settings
    STREAM_CHUNK_SIZE: int = 1024 * 128
    FALLBACK_FILENAME: str = "video.mp4"


settings = Settings()
