import uuid

import pytest

from tests.conftest import BOT_USER_AGENT, CHROME_USER_AGENT

LOGIN_ATTEMPTS_URL = "/api/auth-events/login-attempts"
ADMIN_URL = "/api/admin/fingerprinting"


def browser_headers(ip: str = "8.8.8.8", user_agent: str = CHROME_USER_AGENT) -> dict:
    return {
        "x-forwarded-for": ip,
        "user-agent": user_agent,
        "accept-language": "en-US,en;q=0.9",
        "accept-encoding": "gzip, deflate, br",
    }


def record_login(client, user_id=None, success=True, headers=None, **body):
    payload = {"user_id": str(user_id) if user_id else None, "success": success, **body}
    response = client.post(LOGIN_ATTEMPTS_URL, json=payload, headers=headers or browser_headers())
    assert response.status_code == 200, response.text
    return response.json()["data"]


class TestHealth:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health_checks_database(self, client):
        response = client.get("/health")

        assert response.json() == {"status": "healthy", "database": "connected"}

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"


class TestRecordLoginAttempt:
    def test_clean_login_is_allowed(self, client):
        data = record_login(client, user_id=uuid.uuid4())

        assert data["decision"] == "allow"
        assert data["risk_score"] == 0.0
        assert data["risk_level"] == "minimal"
        assert data["recommended_actions"] == []
        assert data["attempt_id"] is not None
        assert data["is_trusted_device"] is False
        assert "United States" in data["location_display"]
        assert len(data["device_fingerprint"]) == 64

    def test_failed_bot_login_is_challenged(self, client):
        data = record_login(
            client,
            user_id=uuid.uuid4(),
            success=False,
            failure_reason="invalid_password",
            headers=browser_headers(ip="200.1.1.1", user_agent=BOT_USER_AGENT),
        )

        # failed 0.3 + bot 0.4 + unresolved location 0.1
        assert data["risk_score"] == pytest.approx(0.8)
        assert data["risk_level"] == "high"
        assert data["decision"] == "challenge"
        assert "REQUIRE_ADDITIONAL_AUTH" in data["recommended_actions"]
        assert "BOT_DETECTED" in data["security_flags"]
        assert data["location_display"] == "Unknown Location (Low Confidence)"

    def test_failure_reason_on_success_is_rejected(self, client):
        response = client.post(
            LOGIN_ATTEMPTS_URL,
            json={"success": True, "failure_reason": "invalid_password"},
            headers=browser_headers(),
        )

        assert response.status_code == 422

    def test_malformed_client_fingerprint_does_not_fail_request(self, client):
        data = record_login(
            client, user_id=uuid.uuid4(), client_fingerprint={"id": "???", "components": []}
        )

        assert data["decision"] == "allow"

    def test_client_fingerprint_anomalies_are_scored(self, client):
        data = record_login(
            client,
            user_id=uuid.uuid4(),
            client_fingerprint={
                "id": "ab" * 32,
                "fallback": True,
                "components": {"canvas_blocked": True, "webgl_blocked": True},
            },
        )

        # fallback 0.2 + canvas 0.25 + webgl 0.25
        assert data["risk_score"] == pytest.approx(0.7)
        assert data["decision"] == "monitor"


class TestAdminAuthentication:
    @pytest.mark.parametrize(
        "method, path",
        [
            ("get", "/login-attempts"),
            ("get", "/devices"),
            ("get", "/overview"),
            ("get", "/thresholds"),
        ],
    )
    def test_missing_token_is_unauthorized(self, client, method, path):
        response = getattr(client, method)(f"{ADMIN_URL}{path}")

        assert response.status_code == 401

    def test_invalid_token_is_unauthorized(self, client):
        response = client.get(
            f"{ADMIN_URL}/thresholds", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401

    def test_non_admin_role_is_forbidden(self, client, non_admin_headers):
        response = client.get(f"{ADMIN_URL}/thresholds", headers=non_admin_headers)

        assert response.status_code == 403

    def test_trust_requires_admin(self, client, non_admin_headers):
        response = client.post(
            f"{ADMIN_URL}/devices/trust",
            json={"device_fingerprint": "a" * 64},
            headers=non_admin_headers,
        )

        assert response.status_code == 403


class TestThresholdRoutes:
    def test_get_defaults(self, client, admin_headers):
        response = client.get(f"{ADMIN_URL}/thresholds", headers=admin_headers)

        data = response.json()["data"]
        assert (data["low"], data["medium"], data["high"], data["block"]) == (0.3, 0.6, 0.8, 0.9)

    def test_update_changes_decisions(self, client, admin_headers):
        response = client.put(
            f"{ADMIN_URL}/thresholds",
            json={"low": 0.1, "medium": 0.2, "high": 0.3, "block": 0.35},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["updated_by"] == "admin@example.com"

        data = record_login(client, user_id=uuid.uuid4(), success=False)

        assert data["risk_score"] == pytest.approx(0.3)
        assert data["decision"] == "challenge"

    def test_out_of_order_update_is_rejected(self, client, admin_headers):
        response = client.put(
            f"{ADMIN_URL}/thresholds",
            json={"low": 0.5, "medium": 0.3, "high": 0.8, "block": 0.9},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["problems"]

        current = client.get(f"{ADMIN_URL}/thresholds", headers=admin_headers).json()["data"]
        assert current["low"] == 0.3

    def test_out_of_range_value_is_rejected(self, client, admin_headers):
        response = client.put(
            f"{ADMIN_URL}/thresholds",
            json={"low": 0.3, "medium": 0.6, "high": 0.8, "block": 1.5},
            headers=admin_headers,
        )

        assert response.status_code == 422


class TestDeviceRoutes:
    def test_trust_and_untrust_device(self, client, admin_headers):
        user_id = uuid.uuid4()
        fingerprint = record_login(client, user_id=user_id)["device_fingerprint"]

        trusted = client.post(
            f"{ADMIN_URL}/devices/trust",
            json={"device_fingerprint": fingerprint, "user_id": str(user_id)},
            headers=admin_headers,
        )
        repeat = client.post(
            f"{ADMIN_URL}/devices/trust",
            json={"device_fingerprint": fingerprint},
            headers=admin_headers,
        )

        assert trusted.status_code == 200
        assert trusted.json()["data"]["changed"] == 1
        assert repeat.json()["data"]["changed"] == 0
        assert record_login(client, user_id=user_id)["is_trusted_device"] is True

        untrusted = client.post(
            f"{ADMIN_URL}/devices/untrust",
            json={"device_fingerprint": fingerprint},
            headers=admin_headers,
        )
        assert untrusted.json()["data"]["is_trusted"] is False
        assert record_login(client, user_id=user_id)["is_trusted_device"] is False

    def test_unknown_device_is_not_found(self, client, admin_headers):
        response = client.post(
            f"{ADMIN_URL}/devices/trust",
            json={"device_fingerprint": "0" * 64},
            headers=admin_headers,
        )

        assert response.status_code == 404

    def test_list_devices_by_user(self, client, admin_headers):
        user_id = uuid.uuid4()
        record_login(client, user_id=user_id)
        record_login(client, user_id=user_id)
        record_login(client, user_id=uuid.uuid4())

        response = client.get(
            f"{ADMIN_URL}/devices", params={"user_id": str(user_id)}, headers=admin_headers
        )

        body = response.json()
        assert body["total_items"] == 1
        device = body["items"][0]
        assert device["login_count"] == 2
        assert device["device_name"] == "Chrome on Desktop"
        assert device["is_trusted"] is False


class TestReportRoutes:
    def test_list_login_attempts_with_filters(self, client, admin_headers):
        user_id = uuid.uuid4()
        record_login(client, user_id=user_id)
        record_login(client, user_id=user_id, success=False)
        record_login(client, user_id=uuid.uuid4())

        everything = client.get(f"{ADMIN_URL}/login-attempts", headers=admin_headers).json()
        failures = client.get(
            f"{ADMIN_URL}/login-attempts",
            params={"user_id": str(user_id), "success": "false"},
            headers=admin_headers,
        ).json()

        assert everything["total_items"] == 3
        assert failures["total_items"] == 1
        assert failures["items"][0]["success"] is False
        assert failures["items"][0]["ip_address"] == "8.8.8.8"

    def test_pagination_limits_page_size(self, client, admin_headers):
        for _ in range(3):
            record_login(client, user_id=uuid.uuid4())

        body = client.get(
            f"{ADMIN_URL}/login-attempts",
            params={"page": 1, "page_size": 2},
            headers=admin_headers,
        ).json()

        assert len(body["items"]) == 2
        assert body["has_next"] is True

    def test_invalid_sort_order_is_rejected(self, client, admin_headers):
        response = client.get(
            f"{ADMIN_URL}/login-attempts",
            params={"sort_order": "sideways"},
            headers=admin_headers,
        )

        assert response.status_code == 422

    def test_overview_counts(self, client, admin_headers):
        record_login(client, user_id=uuid.uuid4())
        record_login(
            client,
            user_id=uuid.uuid4(),
            success=False,
            headers=browser_headers(ip="200.1.1.1", user_agent=BOT_USER_AGENT),
        )

        data = client.get(
            f"{ADMIN_URL}/overview", params={"hours_back": 24}, headers=admin_headers
        ).json()["data"]

        assert data["total_attempts"] == 2
        assert data["successful_attempts"] == 1
        assert data["failed_attempts"] == 1
        assert data["high_risk_attempts"] == 1
        assert data["total_devices"] == 1
        assert data["trusted_devices"] == 0
        assert data["unique_ips"] == 2
