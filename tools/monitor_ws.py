import asyncio
import json
import sys

import websockets


async def listen(uri):
    print(f"Connecting to {uri}...")
    try:
        async with websockets.connect(uri) as websocket:
            print(f"Connected to {uri}")
            await websocket.send(json.dumps({'type': 'get_stats'}))
            async for message in websocket:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    print("Received non-JSON message")
                    continue

                msg_type = data.get('type')
                payload = data.get('payload', {})
                if msg_type == 'STATE':
                    print(
                        f"[v{payload.get('version')}] Cue {payload.get('cue') or '—'} | "
                        f"{payload.get('description') or '—'} | Color: {payload.get('color') or '—'}"
                    )
                elif msg_type == 'STATS':
                    print(f"Stats: {json.dumps(payload.get('listener'))}")
                else:
                    print(f"Received: {msg_type} {payload}")
    except Exception as e:
        print(f"Connection Error: {e}")


if __name__ == "__main__":
    uri = sys.argv[1] if len(sys.argv) > 1 else "ws://localhost:8765"
    try:
        asyncio.run(listen(uri))
    except KeyboardInterrupt:
        pass
