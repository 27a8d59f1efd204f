"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

PLACEHOLDER_KEYS = {"PLACEHOLDER", "PLACEHOLDER_API_KEY"}


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
            flattened['domain'] = data['server'].get('domain')
            flattened['api_base_url'] = data['server'].get('api_base_url')
        if 'generation' in data:
            generation = data['generation']
            flattened['chat_model'] = generation.get('model')
            flattened['generation_temperature'] = generation.get('temperature')
            flattened['generation_timeout_seconds'] = generation.get('timeout_seconds')
        if 'billing' in data:
            flattened['premium_price_cents'] = data['billing'].get('price_cents')
            flattened['premium_currency'] = data['billing'].get('currency')
        if 'auth' in data:
            flattened['verification_ttl_seconds'] = data['auth'].get('verification_ttl_seconds')
            flattened['email_from'] = data['auth'].get('email_from')

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


def has_credential(value: str | None, min_length: int = 1) -> bool:
    if not value:
        return False
    value = value.strip()
    return value not in PLACEHOLDER_KEYS and len(value) >= min_length


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Generation backend (empty key switches the relay to simulation mode)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    chat_model: str = Field(default="gpt-4o-mini")
    generation_temperature: float = Field(default=0.7)
    generation_timeout_seconds: float | None = Field(default=60.0)

    # Payments (missing secret key means demo checkout)
    stripe_secret_key: str | None = Field(default=None)
    stripe_webhook_secret: str | None = Field(default=None)
    premium_price_cents: int = Field(default=1000)
    premium_currency: str = Field(default="usd")

    # Email (missing key means the code is echoed back as demoCode)
    resend_api_key: str | None = Field(default=None)
    email_from: str = Field(default="MUZGPT <onboarding@resend.dev>")

    # Auth
    verification_ttl_seconds: int = Field(default=600)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=4242)
    domain: str = Field(default="http://localhost:3001")
    api_base_url: str = Field(default="http://localhost:4242")
    allowed_origins: str = Field(default="http://localhost:3001,http://127.0.0.1:3001")

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)
    users_db_file: Path | None = Field(default=None)

    @property
    def data_dir(self) -> Path:
        d = self.project_root / "data"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def users_db_path(self) -> Path:
        if self.users_db_file is not None:
            return self.users_db_file
        return self.data_dir / "users.json"

    @property
    def client_state_dir(self) -> Path:
        d = self.data_dir / "clients"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def frontend_dir(self) -> Path:
        return self.project_root / "frontend"

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def generation_configured(self) -> bool:
        return has_credential(self.openai_api_key, min_length=10)

    @property
    def stripe_configured(self) -> bool:
        return has_credential(self.stripe_secret_key)

    @property
    def email_configured(self) -> bool:
        return has_credential(self.resend_api_key)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()
