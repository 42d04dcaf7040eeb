from typing import get_args

import pytest

from storychain.apps.ws.router import SessionGateway
from storychain.apps.ws.schema import Command, parse_command
from storychain.core.errors import ProtocolError


def connect(client):
    ws = client.websocket_connect("/ws")
    session = ws.__enter__()
    welcome = session.receive_json()
    assert welcome["type"] == "connected"
    return ws, session


def ping(session, token=1):
    """Round-trip a ping; proves nothing else was queued for this connection."""
    session.send_json({"type": "ping", "timestamp": token})
    reply = session.receive_json()
    assert reply == {"type": "pong", "timestamp": token}


@pytest.fixture
def sessions(client):
    opened = []

    def open_session():
        ws, session = connect(client)
        opened.append(ws)
        return session

    yield open_session
    for ws in reversed(opened):
        ws.__exit__(None, None, None)


def create(session, **fields):
    session.send_json({"type": "create_room", "creator": {"id": "ada", "name": "Ada"}, **fields})
    ack = session.receive_json()
    assert ack["type"] == "room_created", ack
    return ack


def join(session, room_id, player_id, name):
    session.send_json({"type": "join_room", "roomId": room_id, "player": {"id": player_id, "name": name}})
    ack = session.receive_json()
    assert ack["type"] == "joined_room", ack
    return ack


def test_every_command_has_a_handler():
    union = get_args(Command)[0]
    gateway = SessionGateway(websocket=None, service=None)
    assert set(get_args(union)) == set(gateway._handlers)


def test_parse_command_errors():
    with pytest.raises(ProtocolError) as exc:
        parse_command(["not", "an", "object"])
    assert exc.value.code == "INVALID_FORMAT"

    with pytest.raises(ProtocolError) as exc:
        parse_command({"roomId": "X"})
    assert exc.value.code == "INVALID_FORMAT"

    with pytest.raises(ProtocolError) as exc:
        parse_command({"type": "dance"})
    assert exc.value.code == "UNKNOWN_COMMAND"

    with pytest.raises(ProtocolError) as exc:
        parse_command({"type": "join_room"})
    assert exc.value.code == "INVALID_COMMAND"


def test_parse_command_accepts_aliases_and_camel_case():
    command = parse_command({"type": "add_story_part", "roomId": "ABC", "playerId": "p1", "content": "Hi"})
    assert command.room_id == "ABC"
    assert command.player_id == "p1"

    command = parse_command({"type": "add_ai_twist", "room_id": "ABC"})
    assert command.room_id == "ABC"


def test_create_room_ack(sessions):
    ada = sessions()
    ack = create(ada, maxRounds=3, aiMode="every_2_rounds")

    assert ack["created"] is True
    assert ack["player_id"] == "ada"
    assert ack["room"]["max_rounds"] == 3
    assert ack["room"]["ai_mode"] == "every_2_rounds"


def test_join_is_broadcast_to_others_but_not_the_joiner(sessions):
    ada, bob = sessions(), sessions()
    room_id = create(ada)["room"]["id"]

    ack = join(bob, room_id.lower(), "bob", "Bob")
    assert ack["added"] is True
    assert [p["id"] for p in ack["room"]["players"]] == ["ada", "bob"]

    event = ada.receive_json()
    assert event["type"] == "player_joined"
    assert event["player"]["id"] == "bob"

    ping(bob)


def test_story_flow_over_websocket(sessions):
    ada, bob = sessions(), sessions()
    room_id = create(ada, maxRounds=1)["room"]["id"]
    join(bob, room_id, "bob", "Bob")
    assert ada.receive_json()["type"] == "player_joined"

    ada.send_json({"type": "submit_turn", "content": "A lighthouse blinked."})
    ack = ada.receive_json()
    assert ack["type"] == "turn_accepted"
    assert ack["next_player"]["id"] == "bob"

    update = bob.receive_json()
    assert update["type"] == "story_updated"
    assert update["story_part"]["content"] == "A lighthouse blinked."

    bob.send_json({"type": "add_story_part", "content": "Then it went dark."})
    assert [bob.receive_json()["type"] for _ in range(2)] == ["story_finished", "turn_accepted"]

    assert [ada.receive_json()["type"] for _ in range(2)] == ["story_updated", "story_finished"]


def test_failures_go_to_originator_only(sessions):
    ada, bob = sessions(), sessions()
    room_id = create(ada)["room"]["id"]
    join(bob, room_id, "bob", "Bob")
    assert ada.receive_json()["type"] == "player_joined"

    bob.send_json({"type": "submit_turn", "content": "Out of turn"})
    error = bob.receive_json()
    assert error["type"] == "error"
    assert error["code"] == "NOT_YOUR_TURN"
    assert error["command"] == "submit_turn"

    ping(ada)


def test_unknown_command_and_bad_json(sessions):
    ws = sessions()

    ws.send_json({"type": "dance"})
    error = ws.receive_json()
    assert error["code"] == "UNKNOWN_COMMAND"
    assert error["command"] == "dance"

    ws.send_text("{not json")
    assert ws.receive_json()["code"] == "INVALID_FORMAT"

    ping(ws)


def test_commands_require_a_room(sessions):
    ws = sessions()
    ws.send_json({"type": "submit_turn", "playerId": "x", "content": "Hello"})
    assert ws.receive_json()["code"] == "NOT_IN_ROOM"

    ws.send_json({"type": "get_room_info"})
    assert ws.receive_json()["code"] == "NOT_IN_ROOM"


def test_mutations_target_own_room_only(sessions):
    ada, eve = sessions(), sessions()
    room_id = create(ada)["room"]["id"]
    create(eve, roomId="OTHER1", creator={"id": "eve", "name": "Eve"})

    eve.send_json({"type": "shuffle_players", "roomId": room_id})
    assert eve.receive_json()["code"] == "NOT_IN_ROOM"

    eve.send_json({"type": "join_room", "roomId": room_id, "player": {"name": "Eve"}})
    assert eve.receive_json()["code"] == "ALREADY_IN_ROOM"


def test_read_commands(sessions, provider):
    ada = sessions()
    room_id = create(ada)["room"]["id"]

    ada.send_json({"type": "get_room_info"})
    assert ada.receive_json()["room"]["id"] == room_id

    ada.send_json({"type": "get_players"})
    players = ada.receive_json()
    assert players["type"] == "players_list"
    assert players["current_player"]["id"] == "ada"

    ada.send_json({"type": "get_current_turn"})
    assert ada.receive_json()["current_round"] == 1

    ada.send_json({"type": "get_story_history"})
    assert ada.receive_json()["story"] == []

    ada.send_json({"type": "ai_suggest_next_player"})
    assert ada.receive_json()["suggestion"] == provider.suggestion

    ada.send_json({"type": "get_story_prompt"})
    assert ada.receive_json()["prompt"] == provider.prompt


def test_requested_twist_arrives_as_broadcast(sessions, provider):
    ada = sessions()
    create(ada)

    ada.send_json({"type": "request_automated_twist"})
    messages = [ada.receive_json() for _ in range(2)]

    types = sorted(m["type"] for m in messages)
    assert types == ["automated_twist_added", "twist_requested"]
    twist = next(m for m in messages if m["type"] == "automated_twist_added")["twist"]
    assert twist["content"] == provider.twist
    assert twist["author"] == "AI"


def test_automatic_twist_after_eligible_round(sessions, provider):
    ada = sessions()
    create(ada, aiMode="every_round")

    ada.send_json({"type": "submit_turn", "content": "Round one."})
    messages = [ada.receive_json() for _ in range(2)]

    assert sorted(m["type"] for m in messages) == ["automated_twist_added", "turn_accepted"]
    ack = next(m for m in messages if m["type"] == "turn_accepted")
    assert ack["should_ai_play"] is True


def test_leave_room(sessions, client):
    ada, bob = sessions(), sessions()
    room_id = create(ada)["room"]["id"]
    join(bob, room_id, "bob", "Bob")
    assert ada.receive_json()["type"] == "player_joined"

    bob.send_json({"type": "leave_room"})
    ack = bob.receive_json()
    assert ack == {
        "type": "left_room",
        "room_id": room_id,
        "room_deleted": False,
        "message": "Successfully left room",
    }

    left = ada.receive_json()
    assert left["type"] == "player_left"
    assert left["player_id"] == "bob"

    assert [p["id"] for p in client.get(f"/rooms/{room_id}/players").json()["players"]] == ["ada"]


def test_disconnect_keeps_the_seat(client, app):
    ada_ws, ada = connect(client)
    room_id = create(ada)["room"]["id"]

    bob_ws, bob = connect(client)
    join(bob, room_id, "bob", "Bob")
    assert ada.receive_json()["type"] == "player_joined"
    bob_ws.__exit__(None, None, None)

    ping(ada)
    players = client.get(f"/rooms/{room_id}/players").json()["players"]
    assert [p["id"] for p in players] == ["ada", "bob"]
    assert app.state.hub.stats() == {room_id: 1}

    ada_ws.__exit__(None, None, None)


def test_rest_mutations_reach_websocket_subscribers(sessions, client):
    ada = sessions()
    room_id = create(ada)["room"]["id"]

    client.post(f"/rooms/{room_id}/join", json={"player": {"id": "bob", "name": "Bob"}})
    event = ada.receive_json()
    assert event["type"] == "player_joined"
    assert event["player"]["name"] == "Bob"


def test_cannot_leave_on_behalf_of_another_player(sessions, client, app):
    ada, bob = sessions(), sessions()
    room_id = create(ada)["room"]["id"]
    join(bob, room_id, "bob", "Bob")
    assert ada.receive_json()["type"] == "player_joined"

    bob.send_json({"type": "leave_room", "playerId": "ada"})
    error = bob.receive_json()
    assert error["code"] == "NOT_YOUR_PLAYER"
    assert error["command"] == "leave_room"

    ping(ada)
    assert [p["id"] for p in client.get(f"/rooms/{room_id}/players").json()["players"]] == ["ada", "bob"]
    assert app.state.hub.stats() == {room_id: 2}

    # Bob's session still acts in the room
    bob.send_json({"type": "get_current_turn"})
    assert bob.receive_json()["current_player"]["id"] == "ada"
