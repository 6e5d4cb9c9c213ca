"""
Credential store: account and profile records.

Emails are stored normalized (stripped, lower-cased) so lookups are plain
equality. Account creation is a single insert guarded by the partial unique
index on live emails; a conflict surfaces as DuplicateAccount rather than a
check-then-insert race.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.account import Account, ROLES
from models.base_model import utcnow
from models.profile import Profile
from services.exceptions import AccountNotFound, DuplicateAccount, store_errors

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "full_name",
    "phone",
    "gender",
    "avatar_url",
    "student_id",
    "department",
    "batch",
    "program",
    "current_trimester",
)


def normalize_email(email: str) -> str:
    if not isinstance(email, str) or not email.strip():
        raise ValueError("Invalid email provided")
    return email.strip().lower()


class CredentialStore:
    def __init__(self, storage):
        self._storage = storage

    @property
    def session(self):
        return self._storage.get_session()

    def find_by_email(self, email: str) -> Optional[Account]:
        try:
            normalized = normalize_email(email)
        except ValueError:
            return None
        session = self.session
        with store_errors(session):
            return session.execute(
                select(Account)
                .where(Account.email == normalized)
                .where(Account.deleted_at.is_(None))
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()

    def find_by_id(self, account_id: str) -> Optional[Account]:
        if not account_id:
            return None
        session = self.session
        with store_errors(session):
            return session.execute(
                select(Account)
                .where(Account.id == str(account_id))
                .where(Account.deleted_at.is_(None))
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()

    def get(self, account_id: str) -> Account:
        account = self.find_by_id(account_id)
        if account is None:
            raise AccountNotFound()
        return account

    def load_profile(self, account_id: str) -> Optional[Profile]:
        """Best effort: a missing or unreadable profile yields None."""
        session = self.session
        try:
            return session.get(Profile, account_id)
        except SQLAlchemyError:
            logger.exception("profile lookup failed for account %s", account_id)
            session.rollback()
            return None

    def create_account(
        self,
        email: str,
        password_hash: str,
        role: str = "user",
        profile: Optional[dict] = None,
    ) -> Account:
        """Insert an account (and its profile) in one transaction."""
        if role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}")
        normalized = normalize_email(email)
        now = utcnow()
        account = Account(
            email=normalized,
            password_hash=password_hash,
            role=role,
            created_at=now,
            updated_at=now,
        )
        session = self.session
        with store_errors(session):
            session.add(account)
            if profile is not None:
                data = {k: v for k, v in profile.items() if k in PROFILE_FIELDS}
                if not data.get("student_id"):
                    data["student_id"] = None
                session.add(
                    Profile(
                        id=account.id,
                        email=normalized,
                        role="admin" if role == "admin" else "student",
                        created_at=now,
                        **data,
                    )
                )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                if "student_id" in str(exc.orig):
                    raise DuplicateAccount("A student with this ID already exists") from exc
                raise DuplicateAccount() from exc
        logger.info("created %s account %s", role, account.id)
        return account

    def set_password_hash(self, account: Account, password_hash: str, commit: bool = True):
        account.password_hash = password_hash
        account.updated_at = utcnow()
        self._flush(account, commit)

    def set_role(self, account: Account, role: str, commit: bool = True):
        if role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}")
        account.role = role
        account.updated_at = utcnow()
        self._flush(account, commit)

    def soft_delete(self, account: Account, commit: bool = True):
        account.soft_delete()
        self._flush(account, commit)

    def _flush(self, account: Account, commit: bool):
        session = self.session
        with store_errors(session):
            session.add(account)
            if commit:
                try:
                    session.commit()
                except SQLAlchemyError:
                    session.rollback()
                    raise
            else:
                session.flush()
