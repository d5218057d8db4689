from conftest import VALID_SIGNATURE, signup, webhook_payload
from copilot.errors import GatewayUnavailable


def subscribe(client, headers, plan="pro", price="price_pro"):
    return client.post("/api/create-subscription", json={"priceId": price, "plan": plan}, headers=headers)


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_signup_and_login(client):
    signup(client, email="Lin@Example.com", password="pw-123456")

    response = client.post("/api/auth/login", json={"email": "lin@example.com", "password": "pw-123456"})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["email"] == "lin@example.com"
    assert body["token"]

    bad = client.post("/api/auth/login", json={"email": "lin@example.com", "password": "nope"})
    assert bad.status_code == 401
    assert bad.json() == {"detail": "Invalid credentials"}


def test_duplicate_signup_rejected(client):
    signup(client)
    response = client.post("/api/auth/signup", json={"name": "G", "email": "grace@example.com", "password": "x1"})
    assert response.status_code == 400
    assert response.json() == {"detail": "User already exists"}


def test_auth_required(client):
    assert client.get("/api/subscription/status").status_code == 401
    response = client.get("/api/subscription/status", headers={"Authorization": "Bearer junk"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid token"}


def test_free_status(client, auth_headers, gateway):
    response = client.get("/api/subscription/status", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["plan"] == "free"
    assert response.json()["status"] == "active"
    assert gateway.calls == []


def test_subscription_lifecycle(client, auth_headers, gateway):
    created = subscribe(client, auth_headers)
    assert created.status_code == 200
    assert created.json() == {"subscriptionId": "sub_1", "clientSecret": "pi_1_secret_abc"}

    status = client.get("/api/subscription/status", headers=auth_headers).json()
    assert status == {
        "plan": "pro",
        "status": "incomplete",
        "currentPeriodEnd": "2026-11-01T00:00:00",
        "cancelAtPeriodEnd": False,
    }

    paid = client.post(
        "/api/webhook/stripe",
        content=webhook_payload("invoice.payment_succeeded", {"id": "in_1", "subscription": "sub_1"}),
        headers={"stripe-signature": VALID_SIGNATURE},
    )
    assert paid.json() == {"received": True}
    gateway.set_remote("sub_1", status="active")

    again = subscribe(client, auth_headers)
    assert again.status_code == 400
    assert again.json() == {"detail": "User already has an active subscription"}

    cancel = client.post("/api/subscription/cancel", headers=auth_headers)
    assert cancel.status_code == 200
    assert "end of the current period" in cancel.json()["message"]

    status = client.get("/api/subscription/status", headers=auth_headers).json()
    assert status["status"] == "active"
    assert status["cancelAtPeriodEnd"] is True


def test_cancel_without_subscription_is_404(client, auth_headers):
    response = client.post("/api/subscription/cancel", headers=auth_headers)
    assert response.status_code == 404
    assert response.json() == {"detail": "No subscription found"}


def test_unknown_plan_is_400(client, auth_headers):
    response = subscribe(client, auth_headers, plan="gold")
    assert response.status_code == 400


def test_malformed_body_is_400(client, auth_headers, gateway):
    response = client.post("/api/create-subscription", json={"plan": "pro"}, headers=auth_headers)

    assert response.status_code == 400
    assert "priceId" in response.json()["detail"]
    assert gateway.calls == []


def test_gateway_failure_is_500_with_message(client, auth_headers, gateway):
    subscribe(client, auth_headers)
    gateway.error = GatewayUnavailable("Could not connect to Stripe")

    response = client.get("/api/subscription/status", headers=auth_headers)

    assert response.status_code == 500
    assert response.json() == {"detail": "Could not connect to Stripe"}


def test_webhook_rejects_bad_signature(client, auth_headers):
    subscribe(client, auth_headers)

    response = client.post(
        "/api/webhook/stripe",
        content=webhook_payload("invoice.payment_failed", {"id": "in_1", "subscription": "sub_1"}),
        headers={"stripe-signature": "t=1,v1=forged"},
    )

    assert response.status_code == 400
    assert "signature" in response.json()["detail"]
    profile = client.get("/api/user/profile", headers=auth_headers).json()
    assert profile["subscription"]["status"] == "incomplete"


def test_webhook_acknowledges_unknown_events(client):
    response = client.post(
        "/api/webhook/stripe",
        content=webhook_payload("charge.refunded", {"id": "ch_1"}),
        headers={"stripe-signature": VALID_SIGNATURE},
    )
    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_webhook_acknowledges_subscription_event_without_status(client, auth_headers):
    subscribe(client, auth_headers)

    response = client.post(
        "/api/webhook/stripe",
        content=webhook_payload("customer.subscription.updated", {"id": "sub_1"}),
        headers={"stripe-signature": VALID_SIGNATURE},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    profile = client.get("/api/user/profile", headers=auth_headers).json()
    assert profile["subscription"]["status"] == "incomplete"


def test_profile_read_and_update(client, auth_headers):
    profile = client.get("/api/user/profile", headers=auth_headers).json()
    assert profile["email"] == "grace@example.com"
    assert profile["subscription"] is None

    updated = client.patch("/api/user/profile", json={"jobRole": "Engineer", "company": "Acme"}, headers=auth_headers)
    assert updated.status_code == 200
    assert updated.json()["jobRole"] == "Engineer"
    assert updated.json()["name"] == "Grace"

    client.patch("/api/user/profile", json={"resumeName": "cv.pdf", "resumeUrl": "https://files.example.com/cv.pdf"},
                 headers=auth_headers)
    profile = client.get("/api/user/profile", headers=auth_headers).json()
    assert profile["resumeName"] == "cv.pdf"
    assert profile["resumeUrl"] == "https://files.example.com/cv.pdf"
    assert "resume" not in profile


def test_features_follow_plan(client, auth_headers):
    free = client.get("/api/features", headers=auth_headers).json()
    assert free["plan"] == "free"
    assert "session_recordings" not in free["features"]

    subscribe(client, auth_headers, plan="enterprise", price="price_ent")
    paid = client.get("/api/features", headers=auth_headers).json()
    assert paid["plan"] == "enterprise"
    assert "sso" in paid["features"]


def test_api_tokens(client, auth_headers):
    created = client.post("/api/tokens", json={}, headers=auth_headers).json()
    assert created["name"] == "Desktop App Token"
    assert len(created["token"]) == 64

    listed = client.get("/api/tokens", headers=auth_headers).json()
    assert [t["id"] for t in listed] == [created["id"]]
    assert listed[0]["lastUsed"] is None
    assert "token" not in listed[0]

    # the API token works as a bearer credential and gets stamped
    token_headers = {"Authorization": f"Bearer {created['token']}"}
    assert client.get("/api/user/profile", headers=token_headers).status_code == 200
    assert client.get("/api/tokens", headers=auth_headers).json()[0]["lastUsed"] is not None

    other = signup(client, email="mallory@example.com")
    assert client.delete(f"/api/tokens/{created['id']}", headers=other).status_code == 404

    deleted = client.delete(f"/api/tokens/{created['id']}", headers=auth_headers)
    assert deleted.json() == {"message": "Token deleted"}
    assert client.get("/api/user/profile", headers=token_headers).status_code == 401


def test_sessions_log_and_free_limits(client, auth_headers):
    created = client.post("/api/sessions", json={"sessionType": "interview", "status": "completed", "duration": 20},
                          headers=auth_headers)
    assert created.status_code == 201
    assert created.json()["sessionType"] == "interview"

    too_long = client.post("/api/sessions", json={"sessionType": "meeting", "status": "completed", "duration": 90},
                           headers=auth_headers)
    assert too_long.status_code == 402

    for _ in range(4):
        client.post("/api/sessions", json={"sessionType": "sales", "status": "completed"}, headers=auth_headers)
    over = client.post("/api/sessions", json={"sessionType": "sales", "status": "completed"}, headers=auth_headers)
    assert over.status_code == 402

    listed = client.get("/api/sessions", headers=auth_headers).json()
    assert len(listed) == 5
    assert listed[0]["sessionType"] == "sales"


def test_session_stats_require_enterprise(client, auth_headers):
    assert client.get("/api/sessions/stats", headers=auth_headers).status_code == 402

    subscribe(client, auth_headers, plan="enterprise", price="price_ent")
    client.post("/api/sessions", json={"sessionType": "meeting", "status": "completed", "duration": 45},
                headers=auth_headers)

    stats = client.get("/api/sessions/stats", headers=auth_headers).json()
    assert stats == {"total": 1, "totalMinutes": 45, "byType": {"meeting": {"count": 1, "minutes": 45}}}
