"""Tests for contract analysis, conversation history and health routes."""
from conftest import DEFAULT_REPLY, all_rows, bearer

from juris_assistant.core.errors import TransientModelError
from juris_assistant.models import ChatEvent, Message
from juris_assistant.services.chat_service import ANALYSIS_FALLBACK


class TestContractAnalysis:

    def test_analysis(self, client, engine, model):
        model.queue("Cláusula 1 é abusiva.")

        response = client.post(
            "/api/playground/analyze",
            json={"text": "CLÁUSULA 1. Multa de 50% em favor da CONTRATANTE."},
            headers=bearer(),
        )

        assert response.status_code == 200
        assert response.json() == {"analysis": "Cláusula 1 é abusiva."}
        assert "CLÁUSULA 1." in model.calls[0]["new_message"]
        assert model.calls[0]["history"] == []
        assert all_rows(engine, Message) == []

        events = all_rows(engine, ChatEvent)
        assert len(events) == 1
        assert events[0].user_id == "user-1"
        assert events[0].status_code == 200

    def test_long_text_is_truncated(self, client, model):
        text = "x" * 2990 + "y" * 100

        client.post("/api/playground/analyze", json={"text": text}, headers=bearer())

        sent = model.calls[0]["new_message"]
        assert "x" * 2990 + "y" * 10 in sent
        assert "y" * 11 not in sent

    def test_blank_text(self, client, model):
        response = client.post(
            "/api/playground/analyze", json={"text": "  "}, headers=bearer()
        )
        assert response.status_code == 400
        assert model.calls == []

    def test_lone_surrogate_is_invalid(self, client, engine, model):
        response = client.post(
            "/api/playground/analyze",
            content=b'{"text": "contrato \\udfff"}',
            headers={**bearer(), "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert model.calls == []
        assert all_rows(engine, ChatEvent)[0].error_type == "INVALID_REQUEST"

    def test_requires_authentication(self, client, model):
        response = client.post("/api/playground/analyze", json={"text": "contrato"})
        assert response.status_code == 401
        assert model.calls == []

    def test_degraded_analysis(self, client, engine, model):
        model.queue(TransientModelError("503"), TransientModelError("503"))

        response = client.post(
            "/api/playground/analyze", json={"text": "contrato"}, headers=bearer()
        )

        assert response.status_code == 200
        assert response.json() == {"analysis": ANALYSIS_FALLBACK}
        assert all_rows(engine, ChatEvent)[0].error_type == "AI_SERVICE_ERROR"


class TestHistory:

    def test_list_conversations(self, client):
        first = client.post("/api/chat", json={"message": "Primeira"}, headers=bearer()).json()
        client.post("/api/chat", json={"message": "Outro usuário"}, headers=bearer("user-2"))

        response = client.get("/api/chat/conversations", headers=bearer())

        assert response.status_code == 200
        conversations = response.json()
        assert [c["id"] for c in conversations] == [first["conversationId"]]
        assert conversations[0]["title"] == "Primeira"

    def test_messages_of_other_user_are_hidden(self, client):
        owned = client.post("/api/chat", json={"message": "Oi"}, headers=bearer("owner")).json()

        response = client.get(
            f"/api/chat/conversations/{owned['conversationId']}/messages",
            headers=bearer("intruder"),
        )

        assert response.status_code == 404
        assert "error" in response.json()

    def test_messages(self, client):
        owned = client.post("/api/chat", json={"message": "Oi"}, headers=bearer()).json()

        response = client.get(
            f"/api/chat/conversations/{owned['conversationId']}/messages",
            headers=bearer(),
        )

        assert response.status_code == 200
        messages = response.json()
        assert [m["content"] for m in messages] == ["Oi", DEFAULT_REPLY]
        assert messages[1]["id"] == owned["messageId"]

    def test_timestamps_carry_utc_offset(self, client):
        owned = client.post("/api/chat", json={"message": "Oi"}, headers=bearer()).json()

        conversations = client.get("/api/chat/conversations", headers=bearer()).json()
        messages = client.get(
            f"/api/chat/conversations/{owned['conversationId']}/messages",
            headers=bearer(),
        ).json()

        assert conversations[0]["createdAt"].endswith("+00:00")
        assert all(m["createdAt"].endswith("+00:00") for m in messages)

    def test_pages_back_from_newest(self, client, store):
        conversation_id = store.create_conversation("user-1", "Longa")
        for i in range(12):
            store.append_message(conversation_id, "user", f"turn {i}", user_id="user-1")
        url = f"/api/chat/conversations/{conversation_id}/messages"

        latest = client.get(f"{url}?limit=5", headers=bearer()).json()
        earlier = client.get(f"{url}?limit=5&offset=5", headers=bearer()).json()
        beyond = client.get(f"{url}?limit=5&offset=12", headers=bearer()).json()

        assert [m["content"] for m in latest] == [f"turn {i}" for i in range(7, 12)]
        assert [m["content"] for m in earlier] == [f"turn {i}" for i in range(2, 7)]
        assert beyond == []

    def test_negative_offset(self, client):
        response = client.get(
            "/api/chat/conversations/abc/messages?offset=-1", headers=bearer()
        )
        assert response.status_code == 400

    def test_requires_authentication(self, client):
        assert client.get("/api/chat/conversations").status_code == 401

    def test_invalid_limit(self, client):
        response = client.get(
            "/api/chat/conversations/abc/messages?limit=0", headers=bearer()
        )
        assert response.status_code == 400


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
