from crm.main import _validation_message, create_app


def test_health(api_client):
    response = api_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["version"] == "v1"
    assert "timestamp" in body


def test_unknown_route_uses_error_envelope(api_client):
    response = api_client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_debug_routes_can_be_disabled(monkeypatch):
    monkeypatch.setattr("crm.main.settings.DEBUG_ENDPOINTS_ENABLED", False)

    app = create_app()

    paths = {route.path for route in app.routes}
    assert "/api/analytics/dashboard" in paths
    assert "/api/analytics/debug" not in paths
    assert "/api/analytics/reset-demo" not in paths


def test_dispatcher_is_attached_to_app_state():
    app = create_app()

    assert app.state.dispatcher.pending() == []


class _FakeValidationError:
    def __init__(self, errors):
        self._errors = errors

    def errors(self):
        return self._errors


def test_validation_message_strips_value_error_prefix():
    exc = _FakeValidationError([{"type": "value_error", "loc": ("body", "rules"), "msg": "Value error, At least one rule is required"}])

    assert _validation_message(exc) == "At least one rule is required"


def test_validation_message_includes_field_location():
    exc = _FakeValidationError(
        [{"type": "string_too_short", "loc": ("body", "name"), "msg": "String should have at least 2 characters"}]
    )

    assert _validation_message(exc) == "name: String should have at least 2 characters"
