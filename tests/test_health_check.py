from modules.core.models import EventStatus, OutboxEvent


class TestHealthCheck:
    def test_health_check_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data

    def test_reports_database_and_cache(self, client):
        services = client.get("/health").json()["services"]
        assert services["database"]["status"] == "up"
        assert services["cache"]["status"] == "up"
        assert "response_time_ms" in services["database"]

    def test_reports_outbox_backlog(self, client):
        OutboxEvent.objects.create(
            event_type="OrderCreated", aggregate_id="a", payload={}, topic="notify_managers"
        )
        OutboxEvent.objects.create(
            event_type="OrderCreated",
            aggregate_id="b",
            payload={},
            topic="notify_managers",
            status=EventStatus.FAILED,
        )

        outbox = client.get("/health").json()["services"]["outbox"]

        assert outbox == {"pending": 1, "failed": 1}
