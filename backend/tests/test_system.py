from fastapi.testclient import TestClient
from bidledger.main import app

client = TestClient(app)

def test_health_ok():
    r = client.get("/health", headers={"x-request-id": "req-abc"})
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["request_id"] == "req-abc"
    assert r.headers["X-Request-ID"] == "req-abc"

def test_version_ok():
    r = client.get("/version")
    assert r.status_code == 200
    data = r.json()
    assert "version" in data and "git_sha" in data

def test_auction_calendar_shape():
    r = client.get("/auction/calendar")
    assert r.status_code == 200
    data = r.json()
    assert data["timezone"] == "Asia/Seoul"
    assert data["slots"] == 5 and data["min_bid_points"] == 10000
    assert isinstance(data["bidding_open"], bool)

def test_settings_surface():
    from bidledger.config import Settings
    assert set(Settings.model_fields) == {
        "environment", "app_name", "app_display_name", "app_version", "git_sha", "cors_origins", "log_level",
        "database_url", "redis_url", "settlement_queue", "jwt_secret", "access_ttl_min",
        "auction_timezone", "min_bid_points", "auction_slots", "bid_cutoff_hour", "settlement_batch_size",
        "quote_fee_points", "low_balance_threshold", "subscription_period_days",
        "stripe_secret_key", "stripe_webhook_secret",
    }
