"""
Credential models handed to provider adapters.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CredentialType(str, Enum):
    """Credential kinds understood by adapters."""

    API_KEY = "api_key"
    OAUTH2 = "oauth2"


class ProviderCredential(BaseModel):
    """One provider's credential for one user."""

    type: CredentialType = Field(..., description="Credential kind")
    api_key: Optional[str] = Field(None, description="API key or connection string")
    access_token: Optional[str] = Field(None, description="OAuth2 access token")
    refresh_token: Optional[str] = Field(None, description="OAuth2 refresh token")
    data: Dict[str, Any] = Field(default_factory=dict, description="Provider-specific extras")
