from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, TypeVar

import requests

from clients.crm import PROVIDER_CLASSES, CRMProvider
from config import log
from schemas.crm import Contact, CRMTask
from services.token_service import TokenManager
from storage.user_store import UserStore
from utils.errors import NotConnectedError, ServiceError, ValidationError
from utils.observability import log_event

T = TypeVar("T")


class UnifiedCRM:
    """
    One user's view over every CRM they have connected.

    Broadcast operations run provider by provider; a provider that fails is
    logged and left out of the result instead of failing the call.
    """

    def __init__(
        self,
        user_id: str,
        tokens: TokenManager,
        users: UserStore,
        *,
        session: Optional[requests.Session] = None,
        provider_classes: Optional[Dict[str, type]] = None,
    ):
        self.user_id = user_id
        self.tokens = tokens
        self.users = users
        self.session = session
        self.provider_classes = provider_classes or PROVIDER_CLASSES
        self._providers: Dict[str, CRMProvider] = {}
        self._connected: List[str] = []

    def initialize(self) -> "UnifiedCRM":
        self._connected = [
            p for p in self.users.connected_providers(self.user_id)
            if p in self.provider_classes
        ]
        return self

    def connected_providers(self) -> List[str]:
        return list(self._connected)

    def is_connected(self) -> bool:
        return bool(self._connected)

    def provider(self, provider_id: str) -> CRMProvider:
        if provider_id not in self.provider_classes:
            raise ValidationError(f"Unsupported CRM provider: {provider_id}")
        if provider_id not in self._connected:
            raise NotConnectedError(self.tokens.provider_config(provider_id).display_name)
        client = self._providers.get(provider_id)
        if client is None:
            client = self.provider_classes[provider_id](
                self.tokens.provider_config(provider_id),
                self.tokens.token_source(self.user_id, provider_id),
                session=self.session,
            )
            self._providers[provider_id] = client
        return client

    def _each(self, action: str, fn: Callable[[CRMProvider], T]) -> Dict[str, T]:
        results: Dict[str, T] = {}
        for provider_id in self._connected:
            try:
                results[provider_id] = fn(self.provider(provider_id))
            except (ServiceError, requests.RequestException, ValueError) as e:
                log_event(
                    "crm_fanout",
                    f"{action} failed",
                    user_id=self.user_id,
                    provider=provider_id,
                    level="warning",
                    data={"error": str(e)},
                )
            except Exception as e:
                log.exception("CRM %s failed on %s", action, provider_id)
                log_event(
                    "crm_fanout",
                    f"{action} failed",
                    user_id=self.user_id,
                    provider=provider_id,
                    level="error",
                    data={"error": f"{type(e).__name__}: {e}"},
                )
        return results

    # =========================
    # Broadcast operations
    # =========================
    def create_contact(self, contact: Contact) -> List[str]:
        created = self._each("create_contact", lambda c: c.create_contact(contact))
        return [f"{p}:{contact_id}" for p, contact_id in created.items()]

    def search_contacts(self, query: str) -> List[Contact]:
        found = self._each("search_contacts", lambda c: c.search_contacts(query))
        unique: Dict[str, Contact] = {}
        for provider_id in self._connected:
            for contact in found.get(provider_id, []):
                contact.provider = contact.provider or provider_id
                unique.setdefault(contact.dedupe_key(), contact)
        return list(unique.values())

    def create_task(self, task: CRMTask) -> List[str]:
        def create(client: CRMProvider) -> Optional[str]:
            if not task.contact_id and client.requires_contact_for_task:
                return None
            return client.create_task(task)

        created = self._each("create_task", create)
        return [f"{p}:{task_id}" for p, task_id in created.items() if task_id is not None]

    def get_tasks(self, contact_id: Optional[str] = None) -> List[CRMTask]:
        found = self._each("get_tasks", lambda c: c.get_tasks(contact_id))
        tasks: List[CRMTask] = []
        for provider_id in self._connected:
            for task in found.get(provider_id, []):
                task.provider = task.provider or provider_id
                tasks.append(task)
        return tasks

    # =========================
    # Targeted operations
    # =========================
    def update_contact(self, provider_id: str, contact_id: str, updates: Dict[str, Any]) -> None:
        self.provider(provider_id).update_contact(contact_id, updates)

    def get_contact(self, provider_id: str, contact_id: str) -> Contact:
        return self.provider(provider_id).get_contact(contact_id)

    def add_note(self, provider_id: str, contact_id: str, note: str) -> None:
        self.provider(provider_id).add_note(contact_id, note)

    def complete_task(self, provider_id: str, task_id: str) -> None:
        self.provider(provider_id).complete_task(task_id)


class CRMService:
    """Builds initialized ``UnifiedCRM`` facades per user."""

    def __init__(self, tokens: TokenManager, users: UserStore, session: Optional[requests.Session] = None):
        self.tokens = tokens
        self.users = users
        self.session = session

    def for_user(self, user_id: str) -> UnifiedCRM:
        return UnifiedCRM(user_id, self.tokens, self.users, session=self.session).initialize()
