"""
Tests for the messaging channel webhook.
"""
from fastapi.testclient import TestClient


class TestVerifyWebhook:
    """Verification handshake on GET /webhook."""

    def test_valid_token_echoes_challenge(self, client: TestClient):
        response = client.get("/webhook", params={
            "hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "1158201444",
        })

        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_wrong_token_rejected(self, client: TestClient):
        response = client.get("/webhook", params={
            "hub.mode": "subscribe", "hub.verify_token": "guess", "hub.challenge": "1158201444",
        })

        assert response.status_code == 403
        data = response.json()
        assert data["error_code"] == "FD_003"
        assert "1158201444" not in response.text

    def test_wrong_mode_rejected(self, client: TestClient):
        response = client.get("/webhook", params={"hub.mode": "unsubscribe", "hub.verify_token": "verify-me"})
        assert response.status_code == 403

    def test_missing_parameters_rejected(self, client: TestClient):
        assert client.get("/webhook").status_code == 403


class TestReceiveWebhook:
    """Event delivery on POST /webhook."""

    def test_text_message_scheduled(self, client: TestClient, text_event: dict, conversation_service):
        response = client.post("/webhook", json=text_event)

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "messages": 1}
        conversation_service.handle_message.assert_awaited_once()
        message, contact_name = conversation_service.handle_message.call_args.args
        assert message.sender == "2348012345678"
        assert message.text.body == "show my routes"
        assert contact_name == "Ada"

    def test_status_only_event_acknowledged(self, client: TestClient, text_event: dict, conversation_service):
        value = text_event["entry"][0]["changes"][0]["value"]
        value["messages"] = []
        value["statuses"] = [{"id": "wamid.out", "status": "delivered"}]

        response = client.post("/webhook", json=text_event)

        assert response.status_code == 200
        assert response.json()["messages"] == 0
        conversation_service.handle_message.assert_not_called()

    def test_unsupported_object_not_found(self, client: TestClient, text_event: dict, conversation_service):
        text_event["object"] = "page"

        response = client.post("/webhook", json=text_event)

        assert response.status_code == 404
        data = response.json()
        assert data["error_code"] == "FD_005"
        assert data["context"] == {"object": "page"}
        conversation_service.handle_message.assert_not_called()

    def test_correlation_id_echoed(self, client: TestClient, text_event: dict, sample_headers: dict):
        response = client.post("/webhook", json=text_event, headers=sample_headers)

        assert response.status_code == 200
        assert response.headers["X-Correlation-ID"] == "test-correlation-123"

    def test_other_methods_not_allowed(self, client: TestClient):
        assert client.put("/webhook", json={}).status_code == 405
        assert client.delete("/webhook").status_code == 405
