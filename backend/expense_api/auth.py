"""Authenticated principal handling.

Token verification happens upstream in the authentication gateway, which
forwards the verified external user id (and, when known, the profile) as
request headers. This module turns those headers into a principal and
decides which local user a request may act on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from .config import Settings, settings


@dataclass(frozen=True)
class ExternalProfile:
    email: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class CurrentUser:
    id: int
    external_id: str
    is_admin: bool = False

    @property
    def owner_scope(self) -> Optional[int]:
        """User id that row lookups are restricted to; ``None`` for administrators."""
        return None if self.is_admin else self.id

    def resolve_user_id(self, requested: Optional[int]) -> int:
        if requested is None or requested == self.id:
            return self.id
        if self.is_admin:
            return requested
        raise HTTPException(status_code=403, detail="userId override requires administrator access")


def placeholder_email(external_id: str) -> str:
    return f"user_{external_id}@example.local"


class IdentityProvider:
    def external_id(self, request: Request) -> Optional[str]:
        raise NotImplementedError

    def lookup_profile(self, request: Request, external_id: str) -> ExternalProfile:
        raise NotImplementedError


class TrustedHeaderIdentityProvider(IdentityProvider):
    def __init__(self, user_header: str, email_header: str, name_header: str) -> None:
        self.user_header = user_header
        self.email_header = email_header
        self.name_header = name_header

    def external_id(self, request: Request) -> Optional[str]:
        value = request.headers.get(self.user_header, "").strip()
        return value or None

    def lookup_profile(self, request: Request, external_id: str) -> ExternalProfile:
        email = request.headers.get(self.email_header, "").strip()
        name = request.headers.get(self.name_header, "").strip()
        return ExternalProfile(email=email or None, name=name or None)


def get_identity_provider(config: Settings = settings) -> IdentityProvider:
    return TrustedHeaderIdentityProvider(
        config.auth_user_header,
        config.auth_email_header,
        config.auth_name_header,
    )
