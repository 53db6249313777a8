from datetime import datetime

import pytest

from app.core.exceptions import BusinessRuleError, ResourceNotFoundError
from app.jobs.cleanup_cron import CleanupCron
from app.main import app
from app.services import (
    cleanup_service,
    config_parameter_service,
    content_service,
    coupon_service,
    profile_service,
    user_service,
)

USER_ID = "64b7f0c2a1b2c3d4e5f60718"


# Coupons

def test_validate_coupon_is_public(client, no_rate_limit, monkeypatch):
    async def fake_validate(code, plan_code=None, upgrade_code=None):
        assert code == "GOLD50"
        assert plan_code == "ORO"
        return {"is_valid": True, "coupon": {"code": "GOLD50"}}

    monkeypatch.setattr(coupon_service, "validate_coupon", fake_validate)
    response = client.get("/api/coupons/validate/GOLD50", params={"plan_code": "ORO"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["is_valid"] is True


def test_validate_coupon_rate_limited(client, monkeypatch):
    from app.services import rate_limit_service

    async def deny(client_id, limit_type="coupon"):
        return {"allowed": False, "retry_after_seconds": 120}

    monkeypatch.setattr(rate_limit_service, "check_rate_limit", deny)
    response = client.get("/api/coupons/validate/GOLD50")
    assert response.status_code == 429
    assert response.json()["error"] == "RATE_LIMIT_EXCEEDED"
    assert response.json()["details"]["retry_after_seconds"] == 120


def test_apply_coupon(client, no_rate_limit, monkeypatch):
    async def fake_apply(code, plan_code, variant_days, upgrade_code=None):
        return {"original_price": 100000, "final_price": 50000, "discount": 50000, "success": True}

    monkeypatch.setattr(coupon_service, "apply_coupon", fake_apply)
    response = client.post("/api/coupons/apply", json={"code": "GOLD50", "plan_code": "ORO", "variant_days": 30})
    assert response.status_code == 200
    assert response.json()["data"]["final_price"] == 50000


def test_apply_coupon_validates_body(client, no_rate_limit):
    response = client.post("/api/coupons/apply", json={"code": "GOLD50", "plan_code": "ORO", "variant_days": 0})
    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"


def test_coupon_admin_routes_reject_regular_users(client, user_headers):
    response = client.get("/api/coupons", headers=user_headers)
    assert response.status_code == 403
    assert response.json()["error"] == "PERMISSION_DENIED"


def test_coupon_stats_for_admin(client, admin_headers, monkeypatch):
    async def fake_stats():
        return {"total": 3, "active": 2, "expired": 1, "exhausted": 0, "by_type": {"percentage": 3}}

    monkeypatch.setattr(coupon_service, "get_coupon_stats", fake_stats)
    response = client.get("/api/coupons/stats", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["total"] == 3


# Users

def test_login_returns_session(client, no_rate_limit, monkeypatch):
    async def fake_login(data):
        assert data.email == "user@example.com"
        return {"success": True, "user": {"id": USER_ID, "email": data.email}, "token": "tok"}

    monkeypatch.setattr(user_service, "login_user", fake_login)
    response = client.post("/api/user/login", json={"email": " User@Example.com ", "password": "pw"})
    assert response.status_code == 200
    assert response.json() == {"success": True, "user": {"id": USER_ID, "email": "user@example.com"}, "token": "tok"}


def test_register_rejects_short_password(client):
    response = client.post("/api/user/register", json={"email": "a@b.co", "name": "A", "password": "short"})
    assert response.status_code == 422


def test_user_cannot_read_someone_else(client, other_user_headers):
    response = client.get(f"/api/user/{USER_ID}", headers=other_user_headers)
    assert response.status_code == 403


def test_me(client, user_headers, monkeypatch):
    async def fake_get(user_id):
        return {"id": user_id, "email": "user@example.com", "has_password": True}

    monkeypatch.setattr(user_service, "get_user_by_id", fake_get)
    response = client.get("/api/user/me", headers=user_headers)
    assert response.status_code == 200
    assert response.json()["data"]["id"] == USER_ID


# Profiles

def test_subscribe_returns_pending_invoice(client, user_headers, monkeypatch):
    async def fake_subscribe(profile_id, user, plan_code, variant_days, coupon_code=None):
        assert user["id"] == USER_ID
        assert (plan_code, variant_days, coupon_code) == ("ORO", 30, "GOLD50")
        return {"status": "pending_payment", "invoice": {"id": "inv1", "total_amount": 60000}}

    monkeypatch.setattr(profile_service, "subscribe_to_plan", fake_subscribe)
    response = client.post(
        "/api/profile/64b7f0c2a1b2c3d4e5f60aaa/subscribe",
        json={"plan_code": "ORO", "variant_days": 30, "coupon_code": "GOLD50"},
        headers=user_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "pending_payment"


def test_purchase_upgrade_business_error(client, user_headers, monkeypatch):
    async def fake_purchase(profile_id, user, upgrade_code):
        raise BusinessRuleError("Upgrade 'DESTACADO' is already active", code="UPGRADE_ALREADY_ACTIVE")

    monkeypatch.setattr(profile_service, "purchase_upgrade", fake_purchase)
    response = client.post(
        "/api/profile/64b7f0c2a1b2c3d4e5f60aaa/upgrades",
        json={"upgrade_code": "DESTACADO"},
        headers=user_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "UPGRADE_ALREADY_ACTIVE"


def test_profile_not_found(client, monkeypatch):
    async def fake_get(profile_id, viewer=None):
        raise ResourceNotFoundError("Profile not found")

    monkeypatch.setattr(profile_service, "get_profile", fake_get)
    response = client.get("/api/profile/64b7f0c2a1b2c3d4e5f60aaa")
    assert response.status_code == 404
    assert response.json()["message"] == "Profile not found"


def test_public_profile_listing(client, monkeypatch):
    async def fake_list(city, department, plan_code, page, limit):
        return {"profiles": [], "total": 0, "page": page, "limit": limit,
                "total_pages": 0, "has_next": False, "has_prev": False}

    monkeypatch.setattr(profile_service, "list_public_profiles", fake_list)
    response = client.get("/api/profile", params={"page": 2, "limit": 5})
    body = response.json()
    assert response.status_code == 200
    assert body["profiles"] == []
    assert body["page"] == 2
    assert body["has_prev"] is False


# Content and config

def test_public_content_page_with_nested_slug(client, monkeypatch):
    async def fake_get(slug):
        return {"slug": slug, "title": "Terms", "sections": []}

    monkeypatch.setattr(content_service, "get_page_by_slug", fake_get)
    response = client.get("/api/content/legal/terms")
    assert response.status_code == 200
    assert response.json()["data"]["slug"] == "legal/terms"


def test_content_write_requires_admin(client, user_headers):
    response = client.delete("/api/content/faq", headers=user_headers)
    assert response.status_code == 403


def test_config_values(client, monkeypatch):
    async def fake_values(keys):
        return {key: 3 for key in keys}

    monkeypatch.setattr(config_parameter_service, "get_values", fake_values)
    response = client.post("/api/config-parameters/values", json={"keys": ["profiles.limits.free_profiles_max"]})
    assert response.status_code == 200
    assert response.json()["data"] == {"profiles.limits.free_profiles_max": 3}


# Cleanup

@pytest.fixture
def stopped_cron():
    async def noop():
        return None

    app.state.cleanup_cron = CleanupCron(noop, interval_seconds=300)
    yield app.state.cleanup_cron
    del app.state.cleanup_cron


def test_cleanup_status(client, admin_headers, stopped_cron):
    response = client.get("/api/cleanup/status", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["is_running"] is False
    assert response.json()["data"]["interval_seconds"] == 300


def test_cleanup_requires_admin(client, user_headers, stopped_cron):
    assert client.get("/api/cleanup/status", headers=user_headers).status_code == 403


def test_cleanup_run(client, admin_headers, monkeypatch):
    async def fake_run(now=None):
        return {"hidden_profiles": 2, "cleaned_upgrades": 1, "expired_invoices": 0,
                "timestamp": datetime(2024, 6, 1)}

    monkeypatch.setattr(cleanup_service, "run_cleanup_tasks", fake_run)
    response = client.post("/api/cleanup/run", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["hidden_profiles"] == 2
    assert data["timestamp"] == "2024-06-01T00:00:00"


def test_stop_when_not_running(client, admin_headers, stopped_cron):
    response = client.post("/api/cleanup/stop", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Cleanup cron was not running"


def test_health_endpoints(client):
    assert client.get("/live").json() == {"status": "alive"}
    assert client.get("/ping").json() == {"message": "pong"}
