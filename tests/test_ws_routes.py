import pytest
from starlette.websockets import WebSocketDisconnect

from live_poll.core.security import TeacherIdentity, create_access_token
from live_poll.schemas.session import SessionConfig
from tests.ws_helpers import receive_until


def open_session(client, **overrides):
    config = {"title": "Geography"}
    config.update(overrides)
    return client.app.state.runtime.sessions.create(SessionConfig(**config))


def join(websocket, payload):
    connected = receive_until(websocket, "connected")
    websocket.send_json(payload)
    joined = receive_until(websocket, "session-joined")
    assert joined["connection_id"] == connected["connection_id"]
    return joined


def test_socket_greets_with_connection_id(client):
    with client.websocket_connect("/ws") as websocket:
        greeting = websocket.receive_json()

    assert greeting["type"] == "connected"
    assert len(greeting["connection_id"]) == 12


def test_poll_round_trip(client):
    code = open_session(client)

    with client.websocket_connect("/ws") as teacher, client.websocket_connect("/ws") as student:
        join(teacher, {"type": "join-as-teacher", "code": code})
        joined = join(student, {"type": "join-as-student", "code": code.lower(), "display_name": "Aisha"})
        assert joined["role"] == "student"
        roster = receive_until(teacher, "roster-updated")
        assert [entry["display_name"] for entry in roster["roster"]] == ["Aisha"]

        teacher.send_json(
            {
                "type": "create-poll",
                "question": "Capital of France?",
                "options": ["Paris", "London"],
                "correct_option_index": 0,
                "duration_seconds": 30,
            }
        )
        started = receive_until(student, "poll-started")
        assert "correct_option_index" not in started["poll"]
        assert started["poll"]["remaining_seconds"] <= 30

        student.send_json({"type": "submit-answer", "option_index": 0})
        ack = receive_until(student, "answer-acknowledged")
        assert (ack["score"], ack["total_answered"]) == (1, 1)
        count = receive_until(teacher, "answer-count")
        while count["answered"] == 0:
            count = receive_until(teacher, "answer-count")
        assert (count["answered"], count["total"]) == (1, 1)

        teacher.send_json({"type": "end-poll"})
        for websocket in (teacher, student):
            results = receive_until(websocket, "poll-results")["results"]
            assert results["correct_option_index"] == 0
            assert [(r["text"], r["percentage"]) for r in results["results"]] == [("Paris", 100), ("London", 0)]


def test_malformed_frames_get_an_error(client):
    with client.websocket_connect("/ws") as websocket:
        receive_until(websocket, "connected")

        websocket.send_text("not json at all")
        first = receive_until(websocket, "error")
        websocket.send_json({"type": "teleport"})
        second = receive_until(websocket, "error")
        websocket.send_json({"type": "submit-answer"})
        third = receive_until(websocket, "error")

    assert {first["kind"], second["kind"], third["kind"]} == {"InvalidMessage"}


def test_binary_frame_gets_an_error_and_keeps_the_socket(client):
    code = open_session(client)

    with client.websocket_connect("/ws") as websocket:
        receive_until(websocket, "connected")
        websocket.send_bytes(b"\x00\x01binary")
        error = receive_until(websocket, "error")

        websocket.send_json({"type": "join-as-student", "code": code, "display_name": "Aisha"})
        joined = receive_until(websocket, "session-joined")

    assert error["kind"] == "InvalidMessage"
    assert joined["role"] == "student"


def test_unknown_code_is_reported(client):
    with client.websocket_connect("/ws") as websocket:
        receive_until(websocket, "connected")
        websocket.send_json({"type": "join-as-student", "code": "NOPE00", "display_name": "Aisha"})

        error = receive_until(websocket, "error")

    assert error["kind"] == "SessionNotFound"


def test_kicked_student_is_disconnected(client):
    code = open_session(client)

    with client.websocket_connect("/ws") as teacher, client.websocket_connect("/ws") as student:
        join(teacher, {"type": "join-as-teacher", "code": code})
        joined = join(student, {"type": "join-as-student", "code": code, "display_name": "Troll"})

        teacher.send_json({"type": "kick", "target_connection_id": joined["connection_id"]})

        removed = receive_until(student, "removed-from-session")
        assert removed["reason"] == "kicked"
        with pytest.raises(WebSocketDisconnect):
            student.receive_json()
        roster = receive_until(teacher, "roster-updated")
        while roster["roster"]:
            roster = receive_until(teacher, "roster-updated")
        assert roster["roster"] == []


def test_owned_session_needs_owner_token(client):
    code = open_session(client, owner_id="teacher-42")
    token = create_access_token(TeacherIdentity(id="teacher-42", name="Ms Smith"))

    with client.websocket_connect("/ws") as websocket:
        receive_until(websocket, "connected")
        websocket.send_json({"type": "join-as-teacher", "code": code})
        assert receive_until(websocket, "error")["kind"] == "Unauthorized"

        websocket.send_json({"type": "join-as-teacher", "code": code, "token": token})
        joined = receive_until(websocket, "session-joined")

    assert joined["role"] == "teacher"


def test_teacher_leaving_closes_the_session(client):
    code = open_session(client)

    with client.websocket_connect("/ws") as student:
        with client.websocket_connect("/ws") as teacher:
            join(teacher, {"type": "join-as-teacher", "code": code})
            join(student, {"type": "join-as-student", "code": code, "display_name": "Aisha"})

        receive_until(student, "teacher-left")
        with pytest.raises(WebSocketDisconnect):
            student.receive_json()

    assert client.app.state.runtime.sessions.find(code) is None
