"""End-to-end tests for the account endpoints under /api/auth."""

from conftest import TEST_PASSWORD, bearer, register


def _drain(client) -> None:
    """Wait until queued audit events and cache write-backs have completed."""

    container = client.app.state.container
    client.portal.call(container.verifier.flush)
    client.portal.call(container.audit.join)


class TestRegisterAndLogin:
    def test_register_returns_account_key_and_token(self, client):
        body = register(client, "alice")

        assert body["message"] == "User registered successfully"
        assert body["user"]["username"] == "alice"
        assert body["user"]["email"] == "alice@example.com"
        assert body["user"]["hourly_quota"] == 100
        assert body["user"]["api_key"].startswith("mcp_")
        assert body["token"].count(".") == 2
        assert "password" not in str(body["user"])

    def test_duplicate_registration_is_conflict(self, client):
        register(client, "alice")

        response = client.post(
            "/api/auth/register",
            json={"username": "alice", "email": "other@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "account_conflict"

    def test_register_validation(self, client):
        response = client.post(
            "/api/auth/register",
            json={"username": "a!", "email": "not-an-email", "password": "123"},
        )

        assert response.status_code == 422

    def test_login(self, client):
        register(client, "alice")

        response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": TEST_PASSWORD})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Login successful"
        assert body["user"]["username"] == "alice"

    def test_login_with_wrong_password(self, client):
        register(client, "alice")

        response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrong-pass"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "InvalidCredentials"

    def test_login_with_unknown_email(self, client):
        response = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": TEST_PASSWORD})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "InvalidCredentials"


class TestSessionProtectedRoutes:
    def test_profile_requires_bearer_token(self, client):
        assert client.get("/api/auth/profile").status_code == 401

        response = client.get("/api/auth/profile", headers=bearer("not-a-token"))
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "InvalidToken"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_api_key_is_not_a_session_credential(self, client):
        body = register(client, "alice")

        response = client.get("/api/auth/profile", headers={"X-API-Key": body["user"]["api_key"]})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "MissingCredential"

    def test_get_profile(self, client):
        body = register(client, "alice")

        response = client.get("/api/auth/profile", headers=bearer(body["token"]))

        assert response.status_code == 200
        assert response.json()["user"]["id"] == body["user"]["id"]

    def test_update_profile(self, client):
        body = register(client, "alice")
        headers = bearer(body["token"])

        response = client.put("/api/auth/profile", json={"username": "alice2"}, headers=headers)

        assert response.status_code == 200
        assert client.get("/api/auth/profile", headers=headers).json()["user"]["username"] == "alice2"

    def test_update_profile_requires_a_field(self, client):
        body = register(client, "alice")

        response = client.put("/api/auth/profile", json={}, headers=bearer(body["token"]))

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "no_fields_to_update"

    def test_update_profile_conflict(self, client):
        alice = register(client, "alice")
        register(client, "bob")

        response = client.put("/api/auth/profile", json={"email": "bob@example.com"}, headers=bearer(alice["token"]))

        assert response.status_code == 409

    def test_regenerated_key_replaces_old_key(self, client):
        body = register(client, "alice")
        old_key = body["user"]["api_key"]
        params = {"query": "weather"}
        assert client.post("/api/tools/execute/web_search", json=params, headers={"X-API-Key": old_key}).status_code == 200
        _drain(client)

        response = client.post("/api/auth/api-key/regenerate", headers=bearer(body["token"]))

        assert response.status_code == 200
        new_key = response.json()["api_key"]
        assert new_key != old_key
        stale = client.post("/api/tools/execute/web_search", json=params, headers={"X-API-Key": old_key})
        assert stale.status_code == 401
        assert stale.json()["error"]["code"] == "UnknownAccount"
        fresh = client.post("/api/tools/execute/web_search", json=params, headers={"X-API-Key": new_key})
        assert fresh.status_code == 200

    def test_update_quota(self, client):
        body = register(client, "alice")
        headers = bearer(body["token"])

        response = client.put("/api/auth/quota", json={"hourly_quota": 5}, headers=headers)

        assert response.status_code == 200
        assert response.json()["hourly_quota"] == 5
        assert client.get("/api/auth/profile", headers=headers).json()["user"]["hourly_quota"] == 5

    def test_update_quota_rejects_non_positive(self, client):
        body = register(client, "alice")

        response = client.put("/api/auth/quota", json={"hourly_quota": 0}, headers=bearer(body["token"]))

        assert response.status_code == 422

    def test_usage_counts_admitted_requests(self, client):
        body = register(client, "alice")
        api_key = body["user"]["api_key"]
        for _ in range(3):
            client.post("/api/tools/execute/web_search", json={"query": "x"}, headers={"X-API-Key": api_key})
        _drain(client)

        response = client.get("/api/auth/usage", headers=bearer(body["token"]))

        assert response.status_code == 200
        usage = response.json()["usage"]
        assert usage["total_requests_24h"] == 3
        assert usage["active_days_24h"] == 1
        assert usage["hourly_quota"] == 100
        assert usage["current_hour_requests"] == 3
        assert usage["remaining_this_hour"] == 97

    def test_deactivate_revokes_every_credential(self, client):
        body = register(client, "alice")
        api_key = body["user"]["api_key"]
        client.post("/api/tools/execute/web_search", json={"query": "x"}, headers={"X-API-Key": api_key})
        _drain(client)

        response = client.post("/api/auth/deactivate", headers=bearer(body["token"]))
        assert response.status_code == 200

        profile = client.get("/api/auth/profile", headers=bearer(body["token"]))
        assert profile.status_code == 401
        assert profile.json()["error"]["code"] == "UnknownAccount"
        tool = client.post("/api/tools/execute/web_search", json={"query": "x"}, headers={"X-API-Key": api_key})
        assert tool.status_code == 401
        login = client.post("/api/auth/login", json={"email": "alice@example.com", "password": TEST_PASSWORD})
        assert login.status_code == 401

    def test_account_actions_are_audited(self, client):
        body = register(client, "alice")
        headers = bearer(body["token"])
        client.post("/api/auth/login", json={"email": "alice@example.com", "password": TEST_PASSWORD})
        client.post("/api/auth/api-key/regenerate", headers=headers)
        _drain(client)

        container = client.app.state.container
        rows = client.portal.call(
            container.database.query,
            "SELECT action, details FROM audit_log WHERE user_id = :id ORDER BY id",
            {"id": body["user"]["id"]},
        )

        assert [row["action"] for row in rows] == ["user_registered", "user_login", "api_key_regenerated"]
        assert body["user"]["api_key"] not in rows[2]["details"]
