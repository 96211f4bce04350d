"""
Credential lookup for workflow runs.

Credentials are read per user; a run only ever sees the rows owned by the
user it executes for.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..models.credential import CredentialType, ProviderCredential
from ..models.database import get_session_factory
from ..models.db_models import CredentialRow

logger = logging.getLogger(__name__)

# Stored key -> ProviderCredential field
_FIELD_ALIASES = {
    "apiKey": "api_key",
    "api_key": "api_key",
    "connectionString": "api_key",
    "accessToken": "access_token",
    "access_token": "access_token",
    "refreshToken": "refresh_token",
    "refresh_token": "refresh_token",
}


def to_provider_credential(row: CredentialRow) -> ProviderCredential:
    """Map a stored row to the shape adapters consume."""
    data: Dict[str, Any] = dict(row.data or {})
    fields: Dict[str, Any] = {}
    extras: Dict[str, Any] = {}
    for key, value in data.items():
        target = _FIELD_ALIASES.get(key)
        if target and target not in fields:
            fields[target] = value
        else:
            extras[key] = value

    try:
        credential_type = CredentialType(row.type)
    except ValueError:
        credential_type = CredentialType.OAUTH2 if "access_token" in fields else CredentialType.API_KEY

    return ProviderCredential(type=credential_type, data=extras, **fields)


class CredentialService:
    """Loads a user's provider credentials."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or get_session_factory()

    async def get_credentials_for_user(self, user_id: str) -> Dict[str, ProviderCredential]:
        """
        All credentials of one user keyed by provider id.

        When a provider has several rows the most recently created one wins.
        """
        with self.session_factory() as session:
            rows = session.scalars(
                select(CredentialRow)
                .where(CredentialRow.user_id == user_id)
                .order_by(CredentialRow.created_at.asc())
            ).all()

        credentials: Dict[str, ProviderCredential] = {}
        for row in rows:
            credentials[row.provider] = to_provider_credential(row)

        logger.debug(f"Loaded {len(credentials)} credential(s) for user {user_id}")
        return credentials

    async def get_credential(self, user_id: str, provider: str) -> Optional[ProviderCredential]:
        credentials = await self.get_credentials_for_user(user_id)
        return credentials.get(provider)
