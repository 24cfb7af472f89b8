from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
import stripe

import config
from clients.crm import OAuthClient, ProviderConfig, build_provider_configs
from clients.http_session import ThreadLocalSession
from clients.mls_client import MLSClient
from clients.openai_client import build_openai_client
from services.billing_service import BillingService
from services.command_service import CommandService
from services.crm_service import CRMService
from services.mls_service import MLSService
from services.reminder_service import ReminderEngine
from services.token_service import TokenManager
from storage.billing_store import CheckoutSessionStore, PaymentStore
from storage.credential_store import CredentialStore
from storage.local_store import default_table_factory
from storage.notification_store import EmailQueue, NotificationStore
from storage.reminder_store import ReminderRuleStore, ReminderStore
from storage.search_store import SearchStore
from storage.user_store import UserStore
from utils.crypto import TokenCipher

_UNSET = object()


@dataclass
class Services:
    users: UserStore
    credentials: CredentialStore
    notifications: NotificationStore
    emails: EmailQueue
    tokens: TokenManager
    crm: CRMService
    reminders: ReminderEngine
    billing: BillingService
    mls: MLSService
    commands: CommandService


def build_services(
    *,
    table_factory=None,
    session: Optional[requests.Session] = None,
    provider_configs: Optional[Dict[str, ProviderConfig]] = None,
    encryption_key: str = config.ENCRYPTION_KEY,
    stripe_module: Any = stripe,
    stripe_api_key: str = config.STRIPE_SECRET_KEY,
    stripe_webhook_secret: str = config.STRIPE_WEBHOOK_SECRET,
    mls_client: Optional[MLSClient] = None,
    openai_client: Any = _UNSET,
    clock=None,
) -> Services:
    """Wire every store and service once per process. Tests pass fakes through the keywords."""
    tables = table_factory or default_table_factory()
    session = session or ThreadLocalSession()

    users = UserStore(tables)
    credentials = CredentialStore(tables, TokenCipher(encryption_key))
    notifications = NotificationStore(tables)
    emails = EmailQueue(tables)

    oauth_clients = {
        pid: OAuthClient(cfg, session=session)
        for pid, cfg in (provider_configs or build_provider_configs()).items()
    }
    token_kwargs = {"clock": clock} if clock else {}
    tokens = TokenManager(credentials, users, oauth_clients, **token_kwargs)
    crm = CRMService(tokens, users, session=session)

    reminders = ReminderEngine(
        ReminderStore(tables),
        ReminderRuleStore(tables),
        users,
        notifications,
        emails,
        crm,
    )
    billing = BillingService(
        users,
        PaymentStore(tables),
        CheckoutSessionStore(tables),
        stripe_module=stripe_module,
        api_key=stripe_api_key,
        webhook_secret=stripe_webhook_secret,
    )
    mls = MLSService(mls_client or MLSClient(session=session), SearchStore(tables), users)
    commands = CommandService(
        build_openai_client() if openai_client is _UNSET else openai_client,
        crm,
        mls,
    )

    return Services(
        users=users,
        credentials=credentials,
        notifications=notifications,
        emails=emails,
        tokens=tokens,
        crm=crm,
        reminders=reminders,
        billing=billing,
        mls=mls,
        commands=commands,
    )


def current_services() -> Services:
    from flask import current_app

    return current_app.extensions["estait"]
