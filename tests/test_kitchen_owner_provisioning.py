from fastapi import FastAPI
from fastapi.testclient import TestClient

from kitchen_pos.core.database import get_db
from kitchen_pos.core.errors import IdentityProviderError, install_error_handlers
from kitchen_pos.deps import get_identity
from kitchen_pos.models.identity_account import IdentityAccount
from kitchen_pos.models.kitchen_owner import KitchenOwner
from kitchen_pos.models.user import User
from kitchen_pos.routers import kitchen_owners
from kitchen_pos.routers.auth import router as auth_router
from kitchen_pos.services.identity import LocalIdentityProvider
from kitchen_pos.services.kitchen_owners import parse_amount, parse_timestamp
from tests.fixtures_data import PROVISIONING_PAYLOAD, build_session_factory


class FailingIdentityProvider:
    def create_account(self, email, password):
        raise IdentityProviderError("provider is down")

    def get_account(self, account_id):
        return None

    def find_account_by_email(self, email):
        return None

    def verify_password(self, email, password):
        return None

    def delete_account(self, account_id):
        raise IdentityProviderError("provider is down")


def _build_client(identity_factory=None):
    session_factory = build_session_factory()

    app = FastAPI()
    install_error_handlers(app)
    app.include_router(kitchen_owners.router)
    app.include_router(auth_router)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    if identity_factory is not None:
        app.dependency_overrides[get_identity] = identity_factory
    return TestClient(app), session_factory


def test_provision_creates_owner_user_and_identity_account():
    client, session_factory = _build_client()

    response = client.post("/api/kitchen-owners/provision", json=PROVISIONING_PAYLOAD)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["email"] == "owner@example.com"
    assert body["data"]["subscription_plan"] == "premium"
    password = body["data"]["credentials"]["password"]
    assert len(password) == 12

    db = session_factory()
    owner = db.query(KitchenOwner).one()
    user = db.query(User).filter(User.id == owner.user_id).one()
    assert user.role == "kitchen_owner"
    assert user.auth_user_id == db.query(IdentityAccount).one().id
    assert owner.is_setup_completed is False

    login = client.post("/api/auth/login", json={"email": "owner@example.com", "password": password})
    assert login.status_code == 200
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {login.json()['access_token']}"})
    assert me.json()["role"] == "kitchen_owner"


def test_missing_field_returns_error_body():
    client, _ = _build_client()
    payload = dict(PROVISIONING_PAYLOAD)
    payload.pop("payment_id")

    response = client.post("/api/kitchen-owners/provision", json=payload)

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required field: payment_id"}


def test_invalid_plan_returns_400():
    client, _ = _build_client()

    response = client.post(
        "/api/kitchen-owners/provision", json={**PROVISIONING_PAYLOAD, "subscription_plan": "platinum"}
    )

    assert response.status_code == 400
    assert "Invalid subscription plan" in response.json()["error"]


def test_second_provision_with_live_account_conflicts():
    client, session_factory = _build_client()
    assert client.post("/api/kitchen-owners/provision", json=PROVISIONING_PAYLOAD).status_code == 201

    response = client.post("/api/kitchen-owners/provision", json=PROVISIONING_PAYLOAD)

    assert response.status_code == 409
    assert response.json() == {"error": "Kitchen owner with this email already exists"}
    assert session_factory().query(KitchenOwner).count() == 1


def test_owner_without_identity_account_is_repaired_not_duplicated():
    client, session_factory = _build_client()
    db = session_factory()
    db.add(
        KitchenOwner(
            email="owner@example.com",
            full_name="Olivia Owner",
            subscription_plan="premium",
            payment_id="pay_123",
            subscription_amount=parse_amount("49.90"),
            subscription_expires_at=parse_timestamp("2030-01-01T00:00:00+00:00"),
        )
    )
    db.commit()
    db.close()

    response = client.post("/api/kitchen-owners/provision", json=PROVISIONING_PAYLOAD)

    assert response.status_code == 201
    body = response.json()
    assert body["repaired"] is True
    assert body["data"]["credentials"]["password"]

    db = session_factory()
    assert db.query(KitchenOwner).count() == 1
    owner = db.query(KitchenOwner).one()
    user = db.query(User).filter(User.email == "owner@example.com").one()
    assert owner.user_id == user.id
    assert db.query(IdentityAccount).one().id == user.auth_user_id

    # Running it again now finds the live account.
    assert client.post("/api/kitchen-owners/provision", json=PROVISIONING_PAYLOAD).status_code == 409


def test_identity_failure_deletes_the_new_owner():
    client, session_factory = _build_client(lambda: FailingIdentityProvider())

    response = client.post("/api/kitchen-owners/provision", json=PROVISIONING_PAYLOAD)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create user account"}
    db = session_factory()
    assert db.query(KitchenOwner).count() == 0
    assert db.query(User).count() == 0


def test_onboarding_token_is_enforced_when_configured(monkeypatch):
    client, _ = _build_client()
    monkeypatch.setattr(kitchen_owners, "ONBOARDING_API_TOKEN", "s3cret")

    denied = client.post("/api/kitchen-owners/provision", json=PROVISIONING_PAYLOAD)
    allowed = client.post(
        "/api/kitchen-owners/provision",
        json=PROVISIONING_PAYLOAD,
        headers={"X-Onboarding-Token": "s3cret"},
    )

    assert denied.status_code == 401
    assert allowed.status_code == 201


def test_production_without_token_is_unavailable(monkeypatch):
    client, _ = _build_client()
    monkeypatch.setattr(kitchen_owners, "ONBOARDING_API_TOKEN", "")
    monkeypatch.setattr(kitchen_owners, "IS_PROD", True)

    response = client.post("/api/kitchen-owners/provision", json=PROVISIONING_PAYLOAD)

    assert response.status_code == 503


def test_login_rejects_wrong_password():
    client, _ = _build_client()
    client.post("/api/kitchen-owners/provision", json=PROVISIONING_PAYLOAD)

    response = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "wrong-password"})

    assert response.status_code == 401


def test_local_provider_reports_existing_accounts():
    db = build_session_factory()()
    identity = LocalIdentityProvider(db)
    created = identity.create_account("someone@example.com", "password-123")

    assert identity.get_account(created.id).email == "someone@example.com"
    assert identity.find_account_by_email("SOMEONE@example.com").id == created.id
    assert identity.verify_password("someone@example.com", "password-123").id == created.id
    assert identity.verify_password("someone@example.com", "nope") is None
