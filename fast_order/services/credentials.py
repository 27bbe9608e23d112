from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Optional, Union

from fast_order.core.config import get_settings


NOT_CONNECTED_MESSAGE = "Not connected to QuickBooks yet. Visit /auth/connect first."


@dataclass
class TokenBundle:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    scopes: list[str] = field(default_factory=list)
    token_type: str = "Bearer"


@dataclass(frozen=True)
class QuickBooksConnection:
    realm_id: str
    tokens: TokenBundle


@dataclass(frozen=True)
class AuthenticationRequired:
    message: str = NOT_CONNECTED_MESSAGE


ConnectionResult = Union[QuickBooksConnection, AuthenticationRequired]


class CredentialStore:
    """In-memory token holder keyed by realm.

    The OAuth callback is the only writer. The realm written last becomes the
    active one, which is what every data endpoint talks to. Expiry is kept for
    reference only; nothing here refreshes or expires tokens.
    """

    def __init__(self, default_realm_id: Optional[str] = None):
        self._tokens: dict[str, TokenBundle] = {}
        self.active_realm_id = default_realm_id

    def get(self, realm_id: str) -> Optional[TokenBundle]:
        return self._tokens.get(realm_id)

    def put(self, realm_id: str, tokens: TokenBundle) -> None:
        self._tokens[realm_id] = tokens
        self.active_realm_id = realm_id


def resolve_connection(store: CredentialStore) -> ConnectionResult:
    realm_id = store.active_realm_id
    if not realm_id:
        return AuthenticationRequired()
    tokens = store.get(realm_id)
    if tokens is None or not tokens.access_token:
        return AuthenticationRequired()
    return QuickBooksConnection(realm_id=realm_id, tokens=tokens)


@lru_cache(maxsize=1)
def get_credential_store() -> CredentialStore:
    return CredentialStore(default_realm_id=get_settings().qb_realm_id)
