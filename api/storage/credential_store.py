from __future__ import annotations

import os
from typing import Optional

from schemas.crm import CredentialRecord, TokenSet
from utils.crypto import TokenCipher
from utils.time_helpers import now_iso


SUPABASE_CREDENTIALS_TABLE = os.environ.get("ESTAIT_CREDENTIALS_TABLE_SUPABASE", "crm_credentials")


class CredentialStore:
    """Per-(user, provider) OAuth credentials. Tokens are encrypted before they reach the table."""

    def __init__(self, table_factory, cipher: TokenCipher):
        self._table = table_factory(SUPABASE_CREDENTIALS_TABLE, ("user_id", "provider"))
        self._cipher = cipher

    def get(self, user_id: str, provider: str) -> Optional[CredentialRecord]:
        row = self._table.get(user_id=user_id, provider=provider)
        if not row:
            return None
        return CredentialRecord.from_row(row)

    def save(self, user_id: str, provider: str, tokens: TokenSet) -> CredentialRecord:
        now = now_iso()
        existing = self._table.get(user_id=user_id, provider=provider)
        record = CredentialRecord(
            user_id=user_id,
            provider=provider,
            access_token=self._cipher.encrypt(tokens.access_token),
            refresh_token=self._cipher.encrypt(tokens.refresh_token),
            expires_at=int(tokens.expires_at),
            token_type=tokens.token_type or "Bearer",
            scope=tokens.scope,
            connected_at=(existing or {}).get("connected_at") or now,
            updated_at=now,
        )
        self._table.upsert(record.to_row())
        return record

    def delete(self, user_id: str, provider: str) -> bool:
        return self._table.delete([("user_id", "eq", user_id), ("provider", "eq", provider)]) > 0

    def access_token(self, record: CredentialRecord) -> str:
        return self._cipher.decrypt(record.access_token)

    def refresh_token(self, record: CredentialRecord) -> str:
        return self._cipher.decrypt(record.refresh_token)
