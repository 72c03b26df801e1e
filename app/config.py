from pydantic import BaseModel
from pydantic_settings import BaseSettings


class AIProviderConfig(BaseModel):
    base_url: str
    api_key: str = ""
    default_model: str


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./bot_database.db"
    debug: bool = False
    log_level: str = "INFO"

    telegram_bot_token: str = ""
    telegram_bot_id: int = 0

    antispam_general_cooldown_ms: int = 1000
    antispam_duplicate_cooldown_ms: int = 10000
    antispam_old_message_threshold_ms: int = 15000
    antispam_marker_ttl_seconds: int = 600

    smart_match_score_threshold: float = 0.75
    smart_match_state_priority_boost: float = 0.1

    ai_default_provider: str = "openrouter"
    ai_providers: dict[str, AIProviderConfig] = {}
    openrouter_api_key: str = ""
    openrouter_model: str = "deepseek/deepseek-chat"
    avalai_api_key: str = ""
    avalai_model: str = "deepseek-chat"
    ai_max_retries: int = 3
    ai_initial_backoff_seconds: float = 1.0
    ai_timeout_seconds: float = 60.0
    ai_cost_per_token: float = 0.0000002
    ai_enabled_in_groups: bool = True
    ai_group_whitelist: list[int] = []
    history_max_entries: int = 4

    search_api_keys: list[str] = []
    search_api_url: str = "https://api.tavily.com/search"
    search_timeout_seconds: float = 15.0

    admin_token: str = ""

    persona_path: str = "persona.yaml"
    triage_dir: str = "."
    events_buffer_size: int = 200
    stats_flush_enabled: bool = True

    class Config:
        env_file = ".env"
        extra = "ignore"

    def provider_table(self) -> dict[str, AIProviderConfig]:
        """Built-in OpenAI-compatible providers, overridden by AI_PROVIDERS entries."""
        table = {
            "openrouter": AIProviderConfig(
                base_url="https://openrouter.ai/api/v1/chat/completions",
                api_key=self.openrouter_api_key,
                default_model=self.openrouter_model,
            ),
            "avalai": AIProviderConfig(
                base_url="https://api.avalai.ir/v1/chat/completions",
                api_key=self.avalai_api_key,
                default_model=self.avalai_model,
            ),
        }
        table.update(self.ai_providers)
        return table


settings = Settings()
