"""
Refresh token ledger.

The ledger is the only authority on whether a refresh token is still live.
Tokens are looked up by their SHA-256 digest. Every mutation is a conditional
UPDATE, so retries are harmless and a token can be rotated out at most once.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from models.base_model import utcnow
from models.refresh_token import RefreshToken
from services.exceptions import store_errors
from utils.security import token_digest

logger = logging.getLogger(__name__)


class RefreshTokenLedger:
    def __init__(self, storage, ttl: timedelta, clock: Callable[[], datetime] = utcnow):
        self._storage = storage
        self._ttl = ttl
        self._clock = clock

    @property
    def session(self):
        return self._storage.get_session()

    def record(self, account_id: str, token: str, commit: bool = True) -> RefreshToken:
        """Persist a newly issued refresh token."""
        now = self._clock()
        row = RefreshToken(
            user_id=account_id,
            token_hash=token_digest(token),
            issued_at=now,
            expires_at=now + self._ttl,
            revoked=False,
        )
        session = self.session
        with store_errors(session):
            session.add(row)
            if commit:
                self._commit(session)
        return row

    def lookup_active(self, token: str, now: Optional[datetime] = None) -> Optional[RefreshToken]:
        """Return the record only if it exists, is not revoked and not expired."""
        if not token:
            return None
        now = now or self._clock()
        session = self.session
        with store_errors(session):
            row = session.execute(
                select(RefreshToken)
                .where(RefreshToken.token_hash == token_digest(token))
                .where(RefreshToken.revoked.is_(False))
                .where(RefreshToken.expires_at > now)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        return row

    def revoke(self, token: str, commit: bool = True) -> bool:
        """Mark one token revoked. Returns False if it was absent or already revoked."""
        now = self._clock()
        session = self.session
        with store_errors(session):
            result = session.execute(
                update(RefreshToken)
                .where(RefreshToken.token_hash == token_digest(token))
                .where(RefreshToken.revoked.is_(False))
                .values(revoked=True, revoked_at=now)
                .execution_options(synchronize_session=False)
            )
            if commit:
                self._commit(session)
        return result.rowcount == 1

    def revoke_all(self, account_id: str, commit: bool = True) -> int:
        """Revoke every live token of an account; returns how many changed."""
        now = self._clock()
        session = self.session
        with store_errors(session):
            result = session.execute(
                update(RefreshToken)
                .where(RefreshToken.user_id == account_id)
                .where(RefreshToken.revoked.is_(False))
                .values(revoked=True, revoked_at=now)
                .execution_options(synchronize_session=False)
            )
            if commit:
                self._commit(session)
        if result.rowcount:
            logger.info("revoked %d refresh token(s) for account %s", result.rowcount, account_id)
        return result.rowcount

    def rotate(self, old_token: str, account_id: str, new_token: str) -> Optional[RefreshToken]:
        """
        Revoke old_token and record new_token in one transaction.

        The revoke is a compare-and-set on revoked = false and an unexpired
        expires_at; when it changes no row (already rotated, revoked or
        expired) nothing is written and None is returned.
        """
        now = self._clock()
        old_hash = token_digest(old_token)
        new_hash = token_digest(new_token)
        session = self.session
        with store_errors(session):
            try:
                result = session.execute(
                    update(RefreshToken)
                    .where(RefreshToken.token_hash == old_hash)
                    .where(RefreshToken.user_id == account_id)
                    .where(RefreshToken.revoked.is_(False))
                    .where(RefreshToken.expires_at > now)
                    .values(revoked=True, revoked_at=now, replaced_by=new_hash)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    session.rollback()
                    return None
                row = RefreshToken(
                    user_id=account_id,
                    token_hash=new_hash,
                    issued_at=now,
                    expires_at=now + self._ttl,
                    revoked=False,
                )
                session.add(row)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise
        return row

    def prune(self, older_than: timedelta) -> int:
        """Delete records that expired more than older_than ago."""
        cutoff = self._clock() - older_than
        session = self.session
        with store_errors(session):
            result = session.execute(
                delete(RefreshToken)
                .where(RefreshToken.expires_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            self._commit(session)
        return result.rowcount

    def _commit(self, session):
        try:
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
