"""
Tests for alumni_connect/routers/message_router.py (HTTP and WebSocket).
"""
import pytest
from starlette.websockets import WebSocketDisconnect

from alumni_connect.realtime.relay import message_relay

from conftest import ALICE, BOB, CAROL, auth_headers, make_token


def connect(client, sender=ALICE, receiver=BOB, accept=True):
    conn_id = client.post(
        "/connections/request",
        json={"receiver_id": receiver},
        headers=auth_headers(sender),
    ).json()["id"]
    if accept:
        client.post(f"/connections/{conn_id}/accept", headers=auth_headers(receiver))
    return conn_id


def send(client, conn_id, user, content):
    return client.post(
        f"/connections/{conn_id}/messages",
        json={"content": content},
        headers=auth_headers(user),
    )


def socket_url(conn_id, user):
    return f"/connections/{conn_id}/messages/ws?token={make_token(user)}"


# =============================================================================
# HTTP
# =============================================================================

@pytest.mark.integration
class TestMessagesHttp:

    def test_send_and_history(self, client):
        conn_id = connect(client)

        first = send(client, conn_id, ALICE, "Hello")
        second = send(client, conn_id, BOB, "Hi")

        assert first.status_code == 201
        assert first.json()["sender_id"] == ALICE
        assert second.json()["id"] > first.json()["id"]

        for user in (ALICE, BOB):
            history = client.get(f"/connections/{conn_id}/messages", headers=auth_headers(user))
            assert history.status_code == 200
            assert [m["content"] for m in history.json()] == ["Hello", "Hi"]

    def test_send_on_pending(self, client):
        conn_id = connect(client, accept=False)

        response = send(client, conn_id, ALICE, "Hello")

        assert response.status_code == 403
        assert response.json()["code"] == "not_connected"

    def test_send_on_rejected(self, client):
        conn_id = connect(client, accept=False)
        client.post(f"/connections/{conn_id}/reject", headers=auth_headers(BOB))

        for user in (ALICE, BOB):
            response = send(client, conn_id, user, "Hello")
            assert response.json()["code"] == "not_connected"

    def test_send_by_outsider(self, client):
        conn_id = connect(client)

        response = send(client, conn_id, CAROL, "Hello")

        assert response.status_code == 403
        assert response.json()["code"] == "not_a_party"

    def test_send_blank(self, client):
        conn_id = connect(client)

        response = send(client, conn_id, ALICE, "   ")

        assert response.status_code == 400
        assert response.json()["code"] == "empty_content"

    def test_history_hidden_from_outsider(self, client):
        conn_id = connect(client)
        send(client, conn_id, ALICE, "Hello")

        response = client.get(f"/connections/{conn_id}/messages", headers=auth_headers(CAROL))

        assert response.status_code == 403

    def test_history_unknown_connection(self, client):
        response = client.get("/connections/999/messages", headers=auth_headers(ALICE))
        assert response.status_code == 404


# =============================================================================
# WebSocket
# =============================================================================

@pytest.mark.integration
class TestChatSocket:

    def test_history_frame_then_relayed_inserts(self, client):
        conn_id = connect(client)
        send(client, conn_id, ALICE, "earlier")

        with client.websocket_connect(socket_url(conn_id, BOB)) as ws:
            history = ws.receive_json()
            assert history["type"] == "history"
            assert [m["content"] for m in history["messages"]] == ["earlier"]

            send(client, conn_id, ALICE, "Hello")
            event = ws.receive_json()

            assert event["type"] == "INSERT"
            assert event["connection_id"] == conn_id
            assert event["record"]["content"] == "Hello"
            assert event["record"]["sender_id"] == ALICE

    def test_end_to_end_between_two_sockets(self, client):
        conn_id = connect(client)

        with client.websocket_connect(socket_url(conn_id, ALICE)) as alice, \
                client.websocket_connect(socket_url(conn_id, BOB)) as bob:
            assert alice.receive_json()["messages"] == []
            assert bob.receive_json()["messages"] == []

            alice.send_json({"action": "send", "content": "Hello", "client_id": "a1"})
            alice_frames = [alice.receive_json(), alice.receive_json()]
            assert {f["type"] for f in alice_frames} == {"ack", "INSERT"}
            ack = next(f for f in alice_frames if f["type"] == "ack")
            assert ack["client_id"] == "a1"

            hello = bob.receive_json()
            assert hello["record"]["content"] == "Hello"

            bob.send_json({"action": "send", "content": "Hi"})
            bob_frames = [bob.receive_json(), bob.receive_json()]
            assert {f["type"] for f in bob_frames} == {"ack", "INSERT"}

            hi = alice.receive_json()
            assert hi["type"] == "INSERT"
            assert hi["record"]["content"] == "Hi"

        history = client.get(f"/connections/{conn_id}/messages", headers=auth_headers(ALICE)).json()
        assert [m["content"] for m in history] == ["Hello", "Hi"]

    def test_send_error_frame(self, client):
        conn_id = connect(client)

        with client.websocket_connect(socket_url(conn_id, ALICE)) as ws:
            ws.receive_json()
            ws.send_json({"action": "send", "content": "  "})
            error = ws.receive_json()

        assert error == {"type": "error", "code": "empty_content", "message": "Message cannot be empty"}

    def test_ping(self, client):
        conn_id = connect(client)

        with client.websocket_connect(socket_url(conn_id, ALICE)) as ws:
            ws.receive_json()
            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_unknown_action(self, client):
        conn_id = connect(client)

        with client.websocket_connect(socket_url(conn_id, ALICE)) as ws:
            ws.receive_json()
            ws.send_json({"action": "edit"})
            assert ws.receive_json()["code"] == "unknown_action"

    def test_close_unsubscribes(self, client):
        conn_id = connect(client)

        with client.websocket_connect(socket_url(conn_id, BOB)) as ws:
            ws.receive_json()
            ws.send_json({"action": "ping"})
            ws.receive_json()
            assert message_relay.subscriber_count(conn_id) == 1

        # Teardown runs on the server after the client has gone
        send(client, conn_id, ALICE, "after close")
        assert message_relay.subscriber_count(conn_id) == 0

    def test_bad_token_refused(self, client):
        conn_id = connect(client)

        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(f"/connections/{conn_id}/messages/ws?token=bad"):
                pass
        assert exc.value.code == 1008

    def test_outsider_refused(self, client):
        conn_id = connect(client)

        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(socket_url(conn_id, CAROL)):
                pass
        assert exc.value.code == 1008

    def test_pending_connection_socket_receives_no_chat(self, client):
        conn_id = connect(client, accept=False)

        with client.websocket_connect(socket_url(conn_id, BOB)) as ws:
            assert ws.receive_json()["messages"] == []
            ws.send_json({"action": "send", "content": "Hello"})
            assert ws.receive_json()["code"] == "not_connected"

    @pytest.mark.parametrize("content", [123, None, ["Hello"]])
    def test_send_with_non_string_content(self, client, content):
        conn_id = connect(client)

        with client.websocket_connect(socket_url(conn_id, ALICE)) as ws:
            ws.receive_json()
            ws.send_json({"action": "send", "content": content})
            error = ws.receive_json()

            assert error["type"] == "error"
            assert error["code"] == "invalid_payload"

            # The socket survives the bad frame
            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"type": "pong"}

        history = client.get(f"/connections/{conn_id}/messages", headers=auth_headers(ALICE)).json()
        assert history == []

    @pytest.mark.parametrize("frame", ["not json", "[1, 2]", '"send"'])
    def test_non_object_frame(self, client, frame):
        conn_id = connect(client)

        with client.websocket_connect(socket_url(conn_id, ALICE)) as ws:
            ws.receive_json()
            ws.send_text(frame)
            assert ws.receive_json()["code"] == "invalid_payload"

            ws.send_json({"action": "send", "content": "still here"})
            assert ws.receive_json()["type"] in ("ack", "INSERT")
