from fastapi.testclient import TestClient
from pydantic import BaseModel

from app.core.exceptions import BusinessRuleError, ResourceNotFoundError
from app.main import app

client = TestClient(app, raise_server_exceptions=False)


class Item(BaseModel):
    name: str
    price: int


@app.post("/test-validation")
def create_item(item: Item):
    return item


@app.get("/test-custom-error")
def trigger_custom_error():
    raise ResourceNotFoundError(message="Item not found")


@app.get("/test-business-error")
def trigger_business_error():
    raise BusinessRuleError("Upgrade already active", code="UPGRADE_ALREADY_ACTIVE", details={"code": "DESTACADO"})


@app.get("/test-unhandled-error")
def trigger_unhandled_error():
    raise RuntimeError("boom")


def test_404_not_found():
    response = client.get("/non-existent-route")
    assert response.status_code == 404
    data = response.json()
    assert data["success"] is False
    assert data["error"] == "HTTP_ERROR"
    assert "message" in data


def test_validation_error_structure():
    response = client.post("/test-validation", json={"name": "foo", "price": "invalid"})
    assert response.status_code == 422
    data = response.json()
    assert data["success"] is False
    assert data["error"] == "VALIDATION_ERROR"
    assert len(data["details"]) > 0


def test_custom_exception():
    response = client.get("/test-custom-error")
    assert response.status_code == 404
    data = response.json()
    assert data["error"] == "NOT_FOUND"
    assert data["message"] == "Item not found"


def test_business_rule_error_keeps_code_and_details():
    response = client.get("/test-business-error")
    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "UPGRADE_ALREADY_ACTIVE"
    assert data["details"] == {"code": "DESTACADO"}


def test_unhandled_exception_is_500():
    response = client.get("/test-unhandled-error")
    assert response.status_code == 500
    data = response.json()
    assert data["success"] is False
    assert data["error"] == "INTERNAL_ERROR"


def test_missing_token_is_401():
    response = client.get("/api/user/me")
    assert response.status_code == 401
    assert response.json()["error"] == "AUTHENTICATION_FAILED"
