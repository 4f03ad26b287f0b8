"""Harness configuration via environment variables."""

from pydantic_settings import BaseSettings

from reliability.shared.flags import to_number

DEFAULT_ROTATION_STRIDE = 1
DEFAULT_REQUEST_TIMEOUT_MS = 30_000


class ConfigurationError(ValueError):
    """Raised when a drill cannot start because its inputs are unusable."""


class Settings(BaseSettings):
    log_level: str = "INFO"

    reliability_base_url: str | None = None
    convex_site_url: str | None = None
    reliability_control_url: str | None = None
    reliability_candidate_url: str | None = None

    reliability_auth_token: str = ""
    reliability_thread_id: str = ""

    reliability_chat_auth_pool_file: str | None = None
    reliability_chat_auth_pool_json: str | None = None
    reliability_chat_rotation_mode: str = "round_robin"
    reliability_chat_rotation_stride: str | None = None
    reliability_chat_rotation_seed: str = "reliability"

    gmail_pubsub_verify_token: str = ""
    whatsapp_app_secret: str = ""

    reliability_output_dir: str = ".output/reliability"
    reliability_request_timeout_ms: str | None = None
    reliability_probe_origin: str = "https://www.sendcat.app"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @property
    def base_url(self) -> str | None:
        return self.reliability_base_url or self.convex_site_url

    # Numeric variables are read permissively; garbage falls back to the default.
    @property
    def rotation_stride(self) -> int:
        return int(to_number(self.reliability_chat_rotation_stride, DEFAULT_ROTATION_STRIDE))

    @property
    def request_timeout_ms(self) -> int:
        return int(to_number(self.reliability_request_timeout_ms, DEFAULT_REQUEST_TIMEOUT_MS))
