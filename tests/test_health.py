"""
Tests for health check endpoints.
"""


class TestHealthChecks:
    """Test health check endpoints"""

    def test_basic_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_detailed_health_check(self, client, db_session):
        response = client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["redis"]["status"] == "healthy"

    def test_redis_outage_is_degraded(self, client, fake_redis):
        fake_redis.fail = True

        data = client.get("/health/detailed").json()

        assert data["status"] == "degraded"
        assert data["checks"]["redis"]["status"] == "unhealthy"

    def test_root(self, client):
        assert client.get("/").json()["status"] == "healthy"
