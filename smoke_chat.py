"""Manual smoke check against a running server (not collected by pytest)."""
import asyncio
import json

import websockets


async def main():
    async with websockets.connect("ws://localhost:3001/ws/chat") as ws:
        # first frame carries our connection token
        connected = json.loads(await ws.recv())
        print(f"Connected: {connected}")

        await ws.send(json.dumps({"event": "user:join", "data": {"username": "smoke"}}))
        for _ in range(3):
            print(f"Join: {await ws.recv()}")

        await ws.send(json.dumps({"event": "message:send", "data": {"content": "Hello from Python!"}}))

        # broadcast echo, then the send confirmation
        print(f"Received: {await ws.recv()}")
        print(f"Ack: {await ws.recv()}")


if __name__ == "__main__":
    asyncio.run(main())
