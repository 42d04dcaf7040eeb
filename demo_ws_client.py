"""
WebSocket Demo Client
=====================
Plays a short session against a running server over /ws.

Usage:
    python demo_ws_client.py                 # create a new room
    python demo_ws_client.py ABC123 Ada      # join an existing room as Ada
"""

import asyncio
import json
import sys

import websockets

URI = "ws://localhost:3000/ws"


async def recv_until(websocket, *types, timeout: float = 5.0) -> dict:
    """Print everything received until a message of one of `types` arrives."""
    while True:
        msg = json.loads(await asyncio.wait_for(websocket.recv(), timeout=timeout))
        print(f"📥 {msg['type']}: {json.dumps(msg, ensure_ascii=False)[:200]}")
        if msg["type"] in types:
            return msg


async def demo(room_id: str | None, name: str):
    print(f"🔌 Connecting to {URI}...")

    try:
        async with websockets.connect(URI) as websocket:
            await recv_until(websocket, "connected")

            if room_id:
                await websocket.send(json.dumps({
                    "type": "join_room",
                    "roomId": room_id,
                    "player": {"name": name},
                }))
                joined = await recv_until(websocket, "joined_room", "error")
            else:
                await websocket.send(json.dumps({
                    "type": "create_room",
                    "creator": {"name": name},
                    "maxRounds": 2,
                    "aiMode": "every_round",
                }))
                joined = await recv_until(websocket, "room_created", "error")
            if joined["type"] == "error":
                return

            print("\n💓 Sending ping...")
            await websocket.send(json.dumps({"type": "ping", "timestamp": 12345}))
            await recv_until(websocket, "pong")

            print("\n✍️  Submitting a story part...")
            await websocket.send(json.dumps({
                "type": "submit_turn",
                "content": "It was a dark and stormy night in the lighthouse.",
            }))
            await recv_until(websocket, "turn_accepted", "error")

            print("\n👂 Listening for broadcasts (10s)...")
            for _ in range(10):
                try:
                    await recv_until(websocket, timeout=1.0)
                except asyncio.TimeoutError:
                    print(".", end="", flush=True)

            print("\n\n✅ Demo completed!")

    except (OSError, websockets.exceptions.WebSocketException) as e:
        print(f"❌ Error: {e}")


if __name__ == "__main__":
    room = sys.argv[1] if len(sys.argv) > 1 else None
    player_name = sys.argv[2] if len(sys.argv) > 2 else "Ada"
    asyncio.run(demo(room, player_name))
