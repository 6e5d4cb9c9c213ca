"""
Session service: sign-in, refresh-token rotation, sign-out, and the account
mutations that must cooperate with the refresh token ledger.

Refresh token states: issued -> active -> rotated-out | revoked | expired.
Rotated-out and revoked are terminal; expired is reached by the clock alone.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from argon2 import PasswordHasher
from sqlalchemy.exc import SQLAlchemyError

from models.account import Account
from services.credentials import CredentialStore
from services.exceptions import (
    InvalidCredentials,
    InvalidToken,
    StoreUnavailable,
    store_errors,
)
from services.identity import Identity
from services.ledger import RefreshTokenLedger
from utils.security import hash_password, ph, token_digest, verify_password
from utils.tokens import TokenCodec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class SignInResult:
    identity: Identity
    tokens: TokenPair


def _fingerprint(token: str) -> str:
    """Short, non-reversible label for log lines."""
    return token_digest(token)[:12]


class SessionService:
    def __init__(
        self,
        codec: TokenCodec,
        credentials: CredentialStore,
        ledger: RefreshTokenLedger,
        hasher: PasswordHasher = ph,
        password_min_length: int = 6,
    ):
        self.codec = codec
        self.credentials = credentials
        self.ledger = ledger
        self.hasher = hasher
        self.password_min_length = password_min_length
        # Verified against when the email is unknown so both failure paths cost the same
        self._dummy_hash = hash_password("cosmos-timing-equalizer", hasher)

    # -- sign in / refresh / sign out ----------------------------------

    def sign_in(self, email: str, password: str) -> SignInResult:
        account = self.credentials.find_by_email(email) if email else None
        if account is None:
            verify_password(password or "", self._dummy_hash, self.hasher)
            logger.warning("sign-in rejected: unknown account")
            raise InvalidCredentials()
        if not verify_password(password, account.password_hash, self.hasher):
            logger.warning("sign-in rejected: bad password for account %s", account.id)
            raise InvalidCredentials()

        self._maybe_rehash(account, password)

        identity = Identity.from_account(account)
        tokens = self._mint(identity)
        self.ledger.record(account.id, tokens.refresh_token)

        profile = self.credentials.load_profile(account.id)
        logger.info("sign-in succeeded for account %s", account.id)
        return SignInResult(identity=Identity.from_account(account, profile), tokens=tokens)

    def refresh(self, refresh_token: str) -> TokenPair:
        claims = self.codec.verify_refresh(refresh_token)

        record = self.ledger.lookup_active(refresh_token)
        if record is None or record.user_id != claims.account_id:
            logger.warning(
                "refresh rejected: token %s is not active (account %s)",
                _fingerprint(refresh_token),
                claims.account_id,
            )
            raise InvalidToken()

        # Role and email come from the account as it is now, not the old claims
        account = self.credentials.find_by_id(claims.account_id)
        if account is None:
            self.ledger.revoke(refresh_token)
            logger.warning("refresh rejected: account %s no longer exists", claims.account_id)
            raise InvalidToken()

        tokens = self._mint(Identity.from_account(account))
        if self.ledger.rotate(refresh_token, account.id, tokens.refresh_token) is None:
            # Lost the compare-and-set: someone else rotated or revoked it first
            logger.warning(
                "refresh rejected: token %s replayed for account %s",
                _fingerprint(refresh_token),
                account.id,
            )
            raise InvalidToken()
        logger.debug("rotated refresh token for account %s", account.id)
        return tokens

    def sign_out(self, refresh_token: Optional[str]) -> None:
        """Revoke the token if it is known. Never raises."""
        if not refresh_token:
            return
        try:
            self.ledger.revoke(refresh_token)
        except (StoreUnavailable, SQLAlchemyError):
            logger.exception("sign-out could not revoke token %s", _fingerprint(refresh_token))

    def sign_out_everywhere(self, account_id: str) -> int:
        return self.ledger.revoke_all(account_id)

    # -- per-request identity ------------------------------------------

    def identify(self, access_token: str) -> Identity:
        claims = self.codec.verify_access(access_token)
        account = self.credentials.find_by_id(claims.account_id)
        if account is None:
            raise InvalidToken()
        return Identity.from_account(account, self.credentials.load_profile(account.id))

    # -- account lifecycle ---------------------------------------------

    def register(self, email: str, password: str, profile: Optional[dict] = None) -> Account:
        """Self-service registration; always a plain user with a profile."""
        return self.create_account(email, password, role="user", profile=profile or {})

    def create_account(
        self,
        email: str,
        password: str,
        role: str = "user",
        profile: Optional[dict] = None,
    ) -> Account:
        self._check_password(password)
        return self.credentials.create_account(
            email, hash_password(password, self.hasher), role=role, profile=profile
        )

    def change_password(self, account_id: str, current_password: str, new_password: str) -> int:
        """Replace the password and end every session of the account."""
        account = self.credentials.get(account_id)
        if not verify_password(current_password, account.password_hash, self.hasher):
            raise InvalidCredentials()
        self._check_password(new_password)
        if new_password == current_password:
            raise ValueError("New password must be different from the current password")
        self.credentials.set_password_hash(
            account, hash_password(new_password, self.hasher), commit=False
        )
        return self._revoke_all_and_commit(account.id)

    def set_role(self, account_id: str, role: str) -> Account:
        account = self.credentials.get(account_id)
        self.credentials.set_role(account, role)
        logger.info("account %s role set to %s", account.id, role)
        return account

    def delete_account(self, account_id: str) -> int:
        """Soft-delete the account and revoke its refresh tokens together."""
        account = self.credentials.get(account_id)
        self.credentials.soft_delete(account, commit=False)
        revoked = self._revoke_all_and_commit(account.id)
        logger.info("account %s deleted", account.id)
        return revoked

    # -- helpers -------------------------------------------------------

    def _mint(self, identity: Identity) -> TokenPair:
        return TokenPair(
            access_token=self.codec.sign_access(identity),
            refresh_token=self.codec.sign_refresh(identity),
        )

    def _check_password(self, password: str):
        if not isinstance(password, str) or len(password) < self.password_min_length:
            raise ValueError(
                f"Password must be at least {self.password_min_length} characters long."
            )

    def _maybe_rehash(self, account: Account, password: str):
        if not self.hasher.check_needs_rehash(account.password_hash):
            return
        try:
            self.credentials.set_password_hash(account, hash_password(password, self.hasher))
        except (StoreUnavailable, SQLAlchemyError):
            logger.warning("could not upgrade password hash for account %s", account.id)

    def _revoke_all_and_commit(self, account_id: str) -> int:
        session = self.ledger.session
        with store_errors(session):
            try:
                revoked = self.ledger.revoke_all(account_id, commit=False)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise
        return revoked
