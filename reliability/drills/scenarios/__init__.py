"""Drill scenarios package.

Exports the scenario classes and ``build_scenarios`` which assembles the
ordered scenario list for one drill invocation.
"""

from dataclasses import replace

from ..models import SloThresholds
from ..options import DrillOptions
from ..profiles import (
    chat_stages_for_profile,
    milestone_policy,
    scale_chat_stages,
    stages_for_profile,
)
from .base import Scenario
from .chat import ChatStreamScenario, chat_slo
from .gmail import GmailPushScenario, push_payload, webhook_slo
from .whatsapp import SIGNATURE_HEADER, WhatsAppWebhookScenario, message_payload, sign_body

SCENARIO_NAMES = (
    GmailPushScenario.name,
    WhatsAppWebhookScenario.name,
    ChatStreamScenario.name,
)


def build_chat_slo(options: DrillOptions) -> SloThresholds:
    """Chat thresholds with milestone floors and coverage flags applied."""
    slo = chat_slo()
    policy = milestone_policy(options.profile)
    if policy is not None:
        slo = replace(
            slo,
            max_p95_ms=policy.max_p95_ms,
            min_two_xx_rate=policy.min_two_xx_rate,
            max_429_rate=policy.max_429_rate,
            max_first_token_p95_ms=policy.max_first_token_p95_ms,
            min_unique_pool_coverage=policy.min_unique_pool_coverage
            if options.chat_pool
            else None,
            min_auth_pool_size=policy.min_auth_pool_size,
        )
    if options.min_unique_coverage is not None:
        slo = replace(slo, min_unique_pool_coverage=options.min_unique_coverage)
    if options.min_unique_users is not None:
        slo = replace(slo, min_unique_pool_users=options.min_unique_users)
    if options.min_pool_size is not None:
        slo = replace(slo, min_auth_pool_size=options.min_pool_size)
    return slo


def build_scenarios(options: DrillOptions) -> list[Scenario]:
    """Scenarios in execution order: both webhooks, then chat."""
    webhook_stages = options.stage_plan.stages or stages_for_profile(options.profile)
    chat_stages = scale_chat_stages(
        options.stage_plan.chat_stages or chat_stages_for_profile(options.profile),
        options.chat_scale,
    )
    return [
        GmailPushScenario(
            options.base_url,
            webhook_stages,
            verify_token=options.gmail_token,
            path=options.gmail_path,
            enabled=options.allows(GmailPushScenario.name),
        ),
        WhatsAppWebhookScenario(
            options.base_url,
            webhook_stages,
            app_secret=options.whatsapp_secret,
            path=options.whatsapp_path,
            enabled=options.allows(WhatsAppWebhookScenario.name),
        ),
        ChatStreamScenario(
            options.base_url,
            chat_stages,
            build_chat_slo(options),
            auth_token=options.auth_token,
            thread_id=options.thread_id,
            pool=options.chat_pool,
            rotation=options.rotation,
            model_id=options.chat_model_id,
            path=options.chat_path,
            selected=options.allows(ChatStreamScenario.name),
        ),
    ]


__all__ = [
    "SCENARIO_NAMES",
    "SIGNATURE_HEADER",
    "ChatStreamScenario",
    "GmailPushScenario",
    "Scenario",
    "WhatsAppWebhookScenario",
    "build_chat_slo",
    "build_scenarios",
    "chat_slo",
    "message_payload",
    "push_payload",
    "sign_body",
    "webhook_slo",
]
