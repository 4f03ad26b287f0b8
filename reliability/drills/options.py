"""Resolving drill options from command line flags and environment settings."""

from dataclasses import dataclass, field
from pathlib import Path

from reliability.config import ConfigurationError, Settings
from reliability.shared.flags import to_number

from .profiles import ChatScale, StagePlan, load_stage_plan, resolve_profile
from .rotation import ChatAuthPoolEntry, RotationConfig, RotationMode, load_chat_auth_pool

DEFAULT_CHAT_MODEL_ID = "moonshotai/kimi-k2.5"


@dataclass
class DrillOptions:
    """Everything a drill run needs, fixed for the whole invocation."""

    base_url: str
    profile: str = "standard"
    quick_mode: bool = False
    scenario_filter: frozenset[str] | None = None
    auth_token: str = ""
    thread_id: str = ""
    chat_pool: list[ChatAuthPoolEntry] = field(default_factory=list)
    rotation: RotationConfig = field(default_factory=RotationConfig)
    chat_scale: ChatScale = field(default_factory=ChatScale)
    min_unique_coverage: float | None = None
    min_unique_users: int | None = None
    min_pool_size: int | None = None
    gmail_token: str = ""
    whatsapp_secret: str = ""
    chat_model_id: str = DEFAULT_CHAT_MODEL_ID
    gmail_path: str = "/api/gmail/push"
    whatsapp_path: str = "/api/whatsapp/webhook"
    chat_path: str = "/api/chat"
    output_dir: Path = Path(".output/reliability")
    timeout_ms: int = 30_000
    stage_plan: StagePlan = field(default_factory=StagePlan)

    def allows(self, scenario_name: str) -> bool:
        return self.scenario_filter is None or scenario_name in self.scenario_filter


def parse_scenario_filter(value: str | None) -> frozenset[str] | None:
    if not value:
        return None
    names = [part.strip() for part in value.split(",") if part.strip()]
    return frozenset(names) if names else None


def resolve_options(flags: dict[str, str], settings: Settings | None = None) -> DrillOptions:
    """Combine flags (highest precedence) with settings.

    Raises:
        ConfigurationError: no base URL, or an unusable pool or stage plan.
    """
    settings = settings or Settings()

    base_url = flags.get("base-url") or settings.base_url
    if not base_url:
        raise ConfigurationError(
            "Missing base URL. Set RELIABILITY_BASE_URL (or pass --base-url=https://...)."
        )

    quick_mode = flags.get("quick") == "true"
    profile = resolve_profile(flags.get("profile"), quick_mode)

    chat_pool = load_chat_auth_pool(
        pool_json=flags.get("chat-auth-pool-json") or settings.reliability_chat_auth_pool_json,
        pool_file=flags.get("chat-auth-pool-file") or settings.reliability_chat_auth_pool_file,
    )

    rotation = RotationConfig(
        mode=RotationMode.parse(
            flags.get("chat-rotation-mode") or settings.reliability_chat_rotation_mode
        ),
        stride=int(
            to_number(flags.get("chat-rotation-stride"), settings.rotation_stride)
        ),
        seed=flags.get("chat-rotation-seed") or settings.reliability_chat_rotation_seed,
    )

    chat_scale = ChatScale(
        load=to_number(flags.get("chat-load-scale"), 1.0),
        concurrency=to_number(flags.get("chat-concurrency-scale"), 1.0),
        duration=to_number(flags.get("chat-duration-scale"), 1.0),
    )

    min_users = to_number(flags.get("chat-min-unique-users"), None)
    min_pool_size = to_number(flags.get("chat-min-pool-size"), None)
    plan_path = flags.get("stage-plan")

    return DrillOptions(
        base_url=base_url,
        profile=profile,
        quick_mode=quick_mode,
        scenario_filter=parse_scenario_filter(flags.get("scenarios")),
        auth_token=flags.get("auth-token") or settings.reliability_auth_token,
        thread_id=flags.get("thread-id") or settings.reliability_thread_id,
        chat_pool=chat_pool,
        rotation=rotation,
        chat_scale=chat_scale,
        min_unique_coverage=to_number(flags.get("chat-min-unique-coverage"), None),
        min_unique_users=int(min_users) if min_users is not None else None,
        min_pool_size=int(min_pool_size) if min_pool_size is not None else None,
        gmail_token=flags.get("gmail-token") or settings.gmail_pubsub_verify_token,
        whatsapp_secret=flags.get("whatsapp-secret") or settings.whatsapp_app_secret,
        chat_model_id=flags.get("chat-model-id") or DEFAULT_CHAT_MODEL_ID,
        gmail_path=flags.get("gmail-path") or "/api/gmail/push",
        whatsapp_path=flags.get("whatsapp-path") or "/api/whatsapp/webhook",
        chat_path=flags.get("chat-path") or "/api/chat",
        output_dir=Path(flags.get("output-dir") or settings.reliability_output_dir),
        timeout_ms=int(to_number(flags.get("timeout-ms"), settings.request_timeout_ms)),
        stage_plan=load_stage_plan(plan_path) if plan_path else StagePlan(),
    )
