"""Process-start assembly of the compliance gate.

The host application calls ``configure_logging()`` and
``build_compliance_service()`` once and hands the returned service to its
message routes. Nothing here is cached at module level.
"""

import logging
from typing import Optional

import openai
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auma.config import Settings, settings as default_settings
from auma.services.compliance.classifier import ComplianceClassifier
from auma.services.compliance.ledger import EscalationLedger
from auma.services.compliance.policy import load_policy
from auma.services.compliance.secondary import SecondaryClassifier
from auma.services.compliance.service import ComplianceService
from auma.services.compliance.store import ComplianceStore, SqlAlchemyComplianceStore
from auma.services.notifications.crm import GhlTaskClient, TokenProvider
from auma.services.notifications.notifier import MloNotifier
from auma.services.notifications.smtp2go import Smtp2GoClient

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings = default_settings) -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO, including URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_secondary_classifier(settings: Settings) -> Optional[SecondaryClassifier]:
    if not settings.secondary_check_configured:
        if settings.secondary_check_enabled:
            logger.warning("Secondary compliance check enabled but DEEPSEEK_API_KEY is not set — disabled")
        return None
    client = openai.AsyncOpenAI(api_key=settings.deepseek_api_key, base_url=settings.deepseek_base_url)
    return SecondaryClassifier(client, settings.deepseek_model, fail_mode=settings.secondary_fail_mode)


def build_compliance_service(
    settings: Settings = default_settings,
    store: Optional[ComplianceStore] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    token_provider: Optional[TokenProvider] = None,
) -> ComplianceService:
    """Wire policy, classifier, ledger, notifier and store from settings.

    ``token_provider`` supplies GoHighLevel access tokens per location; without
    it the CRM task channel is recorded as skipped.
    """
    if store is None:
        if session_factory is None:
            from auma.database import async_session as session_factory
        store = SqlAlchemyComplianceStore(session_factory)

    policy = load_policy(settings.compliance_policy_path or None)
    classifier = ComplianceClassifier(policy, secondary=build_secondary_classifier(settings))

    crm = None
    if token_provider is not None:
        crm = GhlTaskClient(
            token_provider,
            base_url=settings.ghl_api_base_url,
            api_version=settings.ghl_api_version,
        )
    else:
        logger.warning("No CRM token provider configured — MLO task notifications will be skipped")

    messenger = Smtp2GoClient(
        api_key=settings.smtp2go_api_key,
        sender=settings.smtp2go_sender,
        sms_sender=settings.smtp2go_sms_sender,
        environment=settings.environment,
        sandbox_phone=settings.notification_sandbox_phone,
        sandbox_email=settings.notification_sandbox_email,
    )

    notifier = MloNotifier(
        store,
        crm=crm,
        messenger=messenger,
        sla_hours=settings.escalation_sla_hours,
        product_name=settings.product_name,
        crm_app_url=settings.crm_app_url,
    )

    logger.info(
        "Compliance gate ready: policy %r v%s, secondary check %s (fail %s)",
        policy.name,
        policy.version,
        "on" if classifier.secondary else "off",
        settings.secondary_fail_mode,
    )
    return ComplianceService(
        classifier,
        EscalationLedger(store),
        notifier,
        store,
        notify_in_background=settings.notify_in_background,
    )
