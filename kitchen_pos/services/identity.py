"""Login accounts live with an identity provider, separate from ``users``.

``users.auth_user_id`` links a store user to its provider account. The two
can drift apart (an account creation failing after the store write, or an
account deleted out of band); :mod:`kitchen_pos.services.provisioning`
reconciles them.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kitchen_pos.core.config import (
    IDENTITY_HTTP_TIMEOUT_SECONDS,
    IDENTITY_PROVIDER,
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
)
from kitchen_pos.core.errors import IdentityAccountExistsError, IdentityProviderError
from kitchen_pos.models.identity_account import IdentityAccount
from kitchen_pos.services.passwords import hash_password, verify_password

logger = logging.getLogger(__name__)


@dataclass
class IdentityAccountInfo:
    id: str
    email: str


class IdentityProvider(Protocol):
    def create_account(self, email: str, password: str) -> IdentityAccountInfo:
        ...

    def get_account(self, account_id: str) -> IdentityAccountInfo | None:
        ...

    def find_account_by_email(self, email: str) -> IdentityAccountInfo | None:
        ...

    def verify_password(self, email: str, password: str) -> IdentityAccountInfo | None:
        ...

    def delete_account(self, account_id: str) -> None:
        ...


class LocalIdentityProvider:
    """Accounts stored in the ``identity_accounts`` table with bcrypt hashes."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _by_email(self, email: str) -> IdentityAccount | None:
        return self.db.query(IdentityAccount).filter(IdentityAccount.email == email.strip().lower()).first()

    def create_account(self, email: str, password: str) -> IdentityAccountInfo:
        normalized = email.strip().lower()
        if self._by_email(normalized) is not None:
            raise IdentityAccountExistsError(f"A user with email {normalized} has already been registered")

        account = IdentityAccount(id=str(uuid.uuid4()), email=normalized, password_hash=hash_password(password))
        try:
            with self.db.begin_nested():
                self.db.add(account)
        except IntegrityError as exc:
            raise IdentityAccountExistsError(f"A user with email {normalized} has already been registered") from exc
        return IdentityAccountInfo(id=account.id, email=account.email)

    def get_account(self, account_id: str) -> IdentityAccountInfo | None:
        account = self.db.query(IdentityAccount).filter(IdentityAccount.id == account_id).first()
        if account is None:
            return None
        return IdentityAccountInfo(id=account.id, email=account.email)

    def find_account_by_email(self, email: str) -> IdentityAccountInfo | None:
        account = self._by_email(email)
        if account is None:
            return None
        return IdentityAccountInfo(id=account.id, email=account.email)

    def verify_password(self, email: str, password: str) -> IdentityAccountInfo | None:
        account = self._by_email(email)
        if account is None or not verify_password(password, account.password_hash):
            return None
        return IdentityAccountInfo(id=account.id, email=account.email)

    def delete_account(self, account_id: str) -> None:
        account = self.db.query(IdentityAccount).filter(IdentityAccount.id == account_id).first()
        if account is not None:
            self.db.delete(account)
            self.db.flush()


class SupabaseIdentityProvider:
    """GoTrue admin API client (``/auth/v1/admin/users``) over httpx."""

    PAGE_SIZE = 200

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        timeout: float = IDENTITY_HTTP_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not base_url or not service_role_key:
            raise IdentityProviderError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be configured")
        self.base_url = base_url.rstrip("/")
        self.service_role_key = service_role_key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=f"{self.base_url}/auth/v1",
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "apikey": self.service_role_key,
                "Authorization": f"Bearer {self.service_role_key}",
            },
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            with self._client() as client:
                return client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("identity provider request failed method=%s path=%s error=%s", method, path, exc)
            raise IdentityProviderError(f"Identity provider unreachable: {exc}") from exc

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except json.JSONDecodeError:
            return {"raw": response.text}
        return data if isinstance(data, dict) else {"data": data}

    @staticmethod
    def _to_info(data: dict[str, Any]) -> IdentityAccountInfo:
        return IdentityAccountInfo(id=str(data["id"]), email=str(data.get("email") or ""))

    def create_account(self, email: str, password: str) -> IdentityAccountInfo:
        response = self._request(
            "POST",
            "/admin/users",
            json={"email": email, "password": password, "email_confirm": True},
        )
        data = self._json(response)
        if 200 <= response.status_code < 300:
            return self._to_info(data)

        message = str(data.get("msg") or data.get("message") or data.get("error_description") or data)
        if data.get("error_code") == "email_exists" or "already been registered" in message:
            raise IdentityAccountExistsError(message)
        logger.error("identity account creation failed status=%s", response.status_code)
        raise IdentityProviderError(message)

    def get_account(self, account_id: str) -> IdentityAccountInfo | None:
        response = self._request("GET", f"/admin/users/{account_id}")
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise IdentityProviderError(f"Identity provider lookup failed status={response.status_code}")
        return self._to_info(self._json(response))

    def find_account_by_email(self, email: str) -> IdentityAccountInfo | None:
        target = email.strip().lower()
        page = 1
        while True:
            response = self._request("GET", "/admin/users", params={"page": page, "per_page": self.PAGE_SIZE})
            if response.status_code >= 400:
                raise IdentityProviderError(f"Identity provider listing failed status={response.status_code}")
            users = self._json(response).get("users") or []
            for user in users:
                if str(user.get("email") or "").lower() == target:
                    return self._to_info(user)
            if len(users) < self.PAGE_SIZE:
                return None
            page += 1

    def verify_password(self, email: str, password: str) -> IdentityAccountInfo | None:
        response = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if response.status_code in (400, 401):
            return None
        if response.status_code >= 400:
            raise IdentityProviderError(f"Identity provider sign-in failed status={response.status_code}")
        user = self._json(response).get("user")
        if not user:
            raise IdentityProviderError("Identity provider sign-in returned no user")
        return self._to_info(user)

    def delete_account(self, account_id: str) -> None:
        response = self._request("DELETE", f"/admin/users/{account_id}")
        if response.status_code == 404:
            return
        if response.status_code >= 400:
            raise IdentityProviderError(f"Identity provider delete failed status={response.status_code}")


def get_identity_provider(db: Session) -> IdentityProvider:
    if IDENTITY_PROVIDER == "supabase":
        return SupabaseIdentityProvider(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
    if IDENTITY_PROVIDER == "local":
        return LocalIdentityProvider(db)
    raise IdentityProviderError(f"Unknown IDENTITY_PROVIDER: {IDENTITY_PROVIDER}")
