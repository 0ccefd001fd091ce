from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Oracle
    oracle_provider: str = "anthropic"  # anthropic | openrouter
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "anthropic/claude-sonnet-4"
    oracle_max_tokens: int = 4096

    # Investigation loop
    max_iterations: int = 20
    request_timeout_ms: int = 30000
    experiment_delay_ms: int = 500
    cache_probe_delay_ms: int = 1000

    # Collaborators
    user_agent: str = "Mozilla/5.0 (compatible; cacheprobe/0.1; +https://github.com/cacheprobe/cacheprobe)"
    dns_over_https_url: str = "https://cloudflare-dns.com/dns-query"

    # App
    app_log_level: str = "WARNING"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"
    log_to_file: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def api_key_for(self, provider: str) -> str:
        """Credential configured for ``provider``; empty when unset or unknown."""
        keys = {"anthropic": self.anthropic_api_key, "openrouter": self.openrouter_api_key}
        return keys.get(provider.lower().strip(), "")


settings = Settings()
