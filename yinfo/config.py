from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Library and service configuration loaded from environment variables."""

    host: str = "0.0.0.0"
    port: int = 7652
    debug: bool = False
    # Comma-separated origins for CORS. Empty = allow "*" with no credentials.
    cors_origins: str = ""

    request_timeout: int = 30
    # Retries for plain HTTP fetches (embed page, player script)
    max_retries: int = 3
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    )

    # Network retries for one client profile before falling back to the next
    profile_retries: int = 2
    # Comma-separated persona names (e.g. "web,android,tv_embedded"). Empty = priority order.
    client_order: str = ""
    language: str = "en"
    region: str = "US"

    player_url_ttl: int = 86400
    # 0 = cached cipher programs never go stale
    cipher_cache_ttl: int = 0
    sandbox_timeout: float = 10.0
    sandbox_max_steps: int = 2_000_000
    sandbox_workers: int = 2
    decipher_n: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def client_order_list(self) -> list[str] | None:
        names = [n.strip() for n in self.client_order.split(",") if n.strip()]
        return names or None


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
