import json

import httpx
import pytest

from kitchen_pos.core.errors import IdentityAccountExistsError, IdentityProviderError
from kitchen_pos.services.identity import SupabaseIdentityProvider


def _provider(handler):
    return SupabaseIdentityProvider(
        "https://auth.example.com/",
        "service-role-key",
        transport=httpx.MockTransport(handler),
    )


def test_create_account_posts_to_admin_api():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "uuid-1", "email": "a@example.com"})

    account = _provider(handler).create_account("a@example.com", "pw-123456")

    assert account.id == "uuid-1"
    assert seen["path"] == "/auth/v1/admin/users"
    assert seen["auth"] == "Bearer service-role-key"
    assert seen["body"]["email_confirm"] is True


def test_already_registered_maps_to_exists_error():
    def handler(_request):
        return httpx.Response(422, json={"msg": "A user with this email address has already been registered"})

    with pytest.raises(IdentityAccountExistsError):
        _provider(handler).create_account("a@example.com", "pw-123456")


def test_other_failures_raise_provider_error():
    def handler(_request):
        return httpx.Response(500, json={"message": "boom"})

    with pytest.raises(IdentityProviderError):
        _provider(handler).create_account("a@example.com", "pw-123456")


def test_network_errors_raise_provider_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(IdentityProviderError):
        _provider(handler).get_account("uuid-1")


def test_get_account_returns_none_on_404():
    def handler(_request):
        return httpx.Response(404, json={"msg": "User not found"})

    assert _provider(handler).get_account("missing") is None


def test_find_account_by_email_pages_through_users():
    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        if page == 1:
            users = [{"id": f"u{n}", "email": f"user{n}@example.com"} for n in range(SupabaseIdentityProvider.PAGE_SIZE)]
        else:
            users = [{"id": "target", "email": "Owner@Example.com"}]
        return httpx.Response(200, json={"users": users})

    account = _provider(handler).find_account_by_email("owner@example.com")

    assert account is not None
    assert account.id == "target"


def test_verify_password_rejects_bad_credentials():
    def handler(request):
        assert request.url.params["grant_type"] == "password"
        return httpx.Response(400, json={"error": "invalid_grant"})

    assert _provider(handler).verify_password("a@example.com", "nope") is None


def test_missing_configuration_is_rejected():
    with pytest.raises(IdentityProviderError):
        SupabaseIdentityProvider("", "")


def test_delete_account_tolerates_missing_accounts():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path))
        return httpx.Response(404, json={"msg": "User not found"})

    _provider(handler).delete_account("gone")

    assert seen == [("DELETE", "/auth/v1/admin/users/gone")]
