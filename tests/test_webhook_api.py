"""End-to-end tests for POST /line/webhook."""

import pytest
from fastapi.testclient import TestClient

from staff_bot.main import create_app
from staff_bot.services.dedup_service import DedupService
from tests.conftest import FakeRedis, follow_event, postback_event, sent_texts, sign, text_event


@pytest.fixture()
def client(settings, line_bot_service, database):
    app = create_app(
        settings,
        line_bot_service=line_bot_service,
        database=database,
        dedup_service=DedupService(FakeRedis())
    )
    return TestClient(app)


def _post(client, body: bytes, signature=None):
    return client.post(
        "/line/webhook",
        content=body,
        headers={"x-line-signature": sign(body) if signature is None else signature, "content-type": "application/json"}
    )


class TestWebhookAuthentication:
    def test_invalid_signature_rejected_without_processing(self, client, webhook_body, line_api, database):
        body = webhook_body(text_event("AB12"))
        response = _post(client, body, signature="bogus")

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid signature"}
        line_api.reply_message.assert_not_called()
        assert database.get_memberships("U1") == []

    def test_missing_signature_rejected(self, client, webhook_body):
        body = webhook_body(follow_event())
        response = client.post("/line/webhook", content=body)
        assert response.status_code == 401

    def test_invalid_json_after_valid_signature(self, client):
        body = b"{not json"
        response = _post(client, body)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid payload"}


class TestWebhookProcessing:
    def test_empty_batch_verification_request(self, client, webhook_body):
        response = _post(client, webhook_body())
        assert response.status_code == 200
        assert response.json() == {"status": "OK"}

    def test_follow_then_register_then_submit(self, client, webhook_body, line_api, database):
        assert _post(client, webhook_body(follow_event("U1"))).status_code == 200
        assert database.get_profile("U1").name == "Taro"

        assert _post(client, webhook_body(text_event("ab12"))).status_code == 200
        assert [m.store_id for m in database.get_memberships("U1")] == ["S1"]

        body = webhook_body(postback_event("action=submit_preference&date=2026-02-10&status=ok"))
        assert _post(client, body).status_code == 200
        assert database.list_shift_preferences("U1", "S1")[0].status.value == "ok"
        assert "2026-02-10" in sent_texts(line_api.reply_message.call_args_list)[-1]

    def test_handler_failures_do_not_change_response(self, client, webhook_body, line_api):
        line_api.reply_message.side_effect = RuntimeError("unexpected")
        response = _post(client, webhook_body(text_event("hello"), postback_event("action=change_store")))
        assert response.status_code == 200
        assert response.json() == {"status": "OK"}

    def test_unknown_event_types_skipped(self, client, webhook_body, line_api):
        body = webhook_body({"type": "beacon", "source": {"userId": "U1"}}, text_event("hello"))
        assert _post(client, body).status_code == 200
        line_api.reply_message.assert_called_once()

    def test_redelivered_batch_not_reprocessed(self, client, webhook_body, line_api):
        body = webhook_body(text_event("hello", webhookEventId="EV-1"))
        _post(client, body)
        redelivered = webhook_body(text_event("hello", webhookEventId="EV-1", deliveryContext={"isRedelivery": True}))
        _post(client, redelivered)
        line_api.reply_message.assert_called_once()


class TestServiceEndpoints:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"
