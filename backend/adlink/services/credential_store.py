"""
Platform credential store.

Persists the credential produced by a completed OAuth attempt and hands
usable tokens to consumers (ad account listing, customer discovery).

At most one credential exists per (user_id, provider); a reconnect
overwrites the previous one.

SECURITY:
- Meta long-lived tokens are encrypted with TokenCipher before they reach
  the session
- Google refresh tokens are stored as issued (see DESIGN.md)
- Tokens are never logged; only presence flags
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from adlink.constants.providers import OAuthProvider
from adlink.integrations.google_ads.models import GoogleTokenSet
from adlink.integrations.meta_ads.models import MetaIdentity, MetaLongLivedToken
from adlink.models.platform_credential import PlatformCredential
from adlink.platform.errors import NotConnectedError, TokenExpiredError
from adlink.platform.secrets import TokenCipher

logger = logging.getLogger(__name__)


class PlatformCredentialStore:
    """Read/write access to platform_credentials for one request."""

    def __init__(self, db: Session, cipher: Optional[TokenCipher] = None):
        self.db = db
        self._cipher = cipher

    @property
    def cipher(self) -> TokenCipher:
        # Built lazily so Google-only paths never require the key
        if self._cipher is None:
            self._cipher = TokenCipher.from_env()
        return self._cipher

    def get(self, user_id: str, provider: OAuthProvider) -> Optional[PlatformCredential]:
        return self.db.execute(
            select(PlatformCredential)
            .where(PlatformCredential.user_id == user_id)
            .where(PlatformCredential.provider == OAuthProvider(provider).value)
        ).scalar_one_or_none()

    def _get_or_new(self, user_id: str, provider: OAuthProvider) -> PlatformCredential:
        credential = self.get(user_id, provider)
        if credential is None:
            credential = PlatformCredential(user_id=user_id, provider=provider.value)
            self.db.add(credential)
        return credential

    # =========================================================================
    # Writes
    # =========================================================================

    def upsert_google(self, user_id: str, token_set: GoogleTokenSet) -> PlatformCredential:
        """Store the Google refresh token and granted scopes."""
        credential = self._get_or_new(user_id, OAuthProvider.GOOGLE)
        credential.refresh_token = token_set.refresh_token
        credential.scopes = list(token_set.scopes)
        credential.expires_at = None
        self.db.commit()

        logger.info(
            "Google credential stored",
            extra={"user_id": user_id, "scope_count": len(token_set.scopes)},
        )
        return credential

    def upsert_meta(
        self,
        user_id: str,
        long_lived: MetaLongLivedToken,
        identity: Optional[MetaIdentity] = None,
        scopes: Iterable[str] = (),
        now: Optional[datetime] = None,
    ) -> PlatformCredential:
        """
        Encrypt and store a Meta long-lived token.

        expires_at is computed from the issuing instant plus expires_in.
        """
        now = now or datetime.now(timezone.utc)
        identity = identity or MetaIdentity()

        encrypted = self.cipher.encrypt(long_lived.access_token)

        credential = self._get_or_new(user_id, OAuthProvider.META)
        credential.encrypted_access_token = encrypted
        credential.expires_at = now + timedelta(seconds=long_lived.expires_in)
        credential.scopes = list(scopes)
        credential.provider_user_id = identity.user_id
        credential.provider_user_name = identity.name
        self.db.commit()

        logger.info(
            "Meta credential stored",
            extra={
                "user_id": user_id,
                "expires_in": long_lived.expires_in,
                "has_identity": identity.user_id is not None,
            },
        )
        return credential

    def delete(self, user_id: str, provider: OAuthProvider) -> bool:
        """
        Remove the stored credential.

        Returns:
            True if a credential existed
        """
        result = self.db.execute(
            delete(PlatformCredential)
            .where(PlatformCredential.user_id == user_id)
            .where(PlatformCredential.provider == OAuthProvider(provider).value)
        )
        self.db.commit()
        return bool(result.rowcount)

    # =========================================================================
    # Token access
    # =========================================================================

    def get_google_refresh_token(self, user_id: str) -> str:
        credential = self.get(user_id, OAuthProvider.GOOGLE)
        if credential is None or not credential.refresh_token:
            raise NotConnectedError(OAuthProvider.GOOGLE.value)
        return credential.refresh_token

    def get_meta_access_token(self, user_id: str, now: Optional[datetime] = None) -> str:
        """
        Return the decrypted Meta long-lived token.

        Raises:
            NotConnectedError: No Meta credential stored
            TokenExpiredError: Stored expiry has passed
            EncryptionError: Key missing or ciphertext invalid
        """
        credential = self.get(user_id, OAuthProvider.META)
        if credential is None or not credential.encrypted_access_token:
            raise NotConnectedError(OAuthProvider.META.value)

        if credential.is_expired(now):
            logger.info("Stored Meta token has expired", extra={"user_id": user_id})
            raise TokenExpiredError(
                "Stored Meta token has expired",
                provider=OAuthProvider.META.value,
            )

        return self.cipher.decrypt(credential.encrypted_access_token)
