from fastapi.testclient import TestClient

from src.orchestration.visualization import SENTINEL


def test_chat_session_flow(client: TestClient, fake_invoker):
    response = client.post("/api/chat/sessions", json={"context": "pricing"})
    assert response.status_code == 201
    session = response.json()["session"]
    session_id = session["id"]
    assert session_id.startswith("pricing-")

    fake_invoker.replies = [
        "Margins stay above 30%.\n"
        f'{SENTINEL}{{"type": "pricing", "data": {{"currentPrice": 42}}}}{SENTINEL}'
    ]
    response = client.post(
        f"/api/chat/sessions/{session_id}/messages",
        json={"message": "What if I raise prices by 5%?", "context_data": {"sku": "p1"}},
    )
    assert response.status_code == 200
    reply = response.json()
    assert reply["role"] == "assistant"
    assert reply["content"] == "Margins stay above 30%."
    assert reply["visualization"]["type"] == "pricing"
    assert reply["view"]["current_price"] == 42

    response = client.get(f"/api/chat/sessions/{session_id}/messages")
    assert response.status_code == 200
    messages = response.json()["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[1]["view"]["kind"] == "pricing"

    response = client.get("/api/chat/sessions", params={"context": "pricing"})
    assert [s["id"] for s in response.json()["sessions"]] == [session_id]


def test_send_to_new_session_requires_context(client: TestClient):
    response = client.post("/api/chat/sessions/unknown/messages", json={"message": "hi"})
    assert response.status_code == 404

    response = client.post("/api/chat/sessions/general-1/messages", json={"message": "hi", "context": "general"})
    assert response.status_code == 200


def test_blank_message_is_rejected(client: TestClient):
    response = client.post("/api/chat/sessions/general-1/messages", json={"message": "  ", "context": "general"})
    assert response.status_code == 422


def test_ai_failure_maps_to_bad_gateway(client: TestClient, fake_invoker, unavailable):
    fake_invoker.replies = [unavailable]

    response = client.post("/api/chat/sessions/general-1/messages", json={"message": "hi", "context": "general"})

    assert response.status_code == 502
    assert client.get("/api/chat/sessions/general-1/messages").json()["messages"] == []


def test_suggestion_fallback_is_labelled(client: TestClient, fake_invoker, unavailable):
    fake_invoker.replies = [unavailable]

    response = client.post("/api/chat/suggestion", json={"context": "inventory", "prompt": "help"})

    assert response.status_code == 200
    assert response.json()["is_fallback"] is True

    notifications = client.get("/api/notifications").json()["notifications"]
    assert notifications[0]["level"] == "warning"


def test_messages_of_unknown_session(client: TestClient):
    assert client.get("/api/chat/sessions/missing/messages").status_code == 404
