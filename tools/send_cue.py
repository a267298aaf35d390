#!/usr/bin/env python3
"""
Manual OSC sender - sends cue updates to a running cue-display.

Usage:
    python3 tools/send_cue.py                  # demo sequence to 127.0.0.1:9000
    python3 tools/send_cue.py --port=9001 --cue=12 --description="House to half" --color=#FF8800
    python3 tools/send_cue.py --noise           # also send packets the display must ignore
"""

import os
import socket
import sys
import time

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from cuedisplay.state.field_mapper import parse_hex_color
from cuedisplay.udp_listener.osc_builder import (
    build_bundle,
    build_color,
    build_cue,
    build_description,
    build_osc_message,
)


DEMO_EVENTS = [
    build_cue("1"),
    build_description("Preshow"),
    build_color(parse_hex_color("#3366FF")),
    build_cue("2"),
    build_description("House to half"),
    build_osc_message("/color", 1.0, 0.5, 0.0),
    build_cue("Act1Scene2"),
    build_description("Blackout"),
    build_osc_message("/color", 0, 0, 0),
]

NOISE_EVENTS = [
    ("unrelated address", build_osc_message("/unrelated", 1, 2.0)),
    ("wrong argument type", build_osc_message("/cue", 42)),
    ("truncated packet", build_cue("Truncated")[:-4]),
    ("bundle", build_bundle(build_cue("in a bundle"))),
]


def main():
    host = "127.0.0.1"
    port = 9000
    single = []
    noise = False

    for arg in sys.argv[1:]:
        if arg.startswith("--host="):
            host = arg.split("=", 1)[1]
        elif arg.startswith("--port="):
            port = int(arg.split("=", 1)[1])
        elif arg.startswith("--cue="):
            single.append(build_cue(arg.split("=", 1)[1]))
        elif arg.startswith("--description="):
            single.append(build_description(arg.split("=", 1)[1]))
        elif arg.startswith("--color="):
            color = parse_hex_color(arg.split("=", 1)[1])
            if color is None:
                print("Color must look like #RRGGBB or #RRGGBBAA")
                sys.exit(2)
            single.append(build_color(color))
        elif arg == "--noise":
            noise = True
        else:
            print(__doc__)
            sys.exit(2)

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    print(f"Sending to {host}:{port}")

    try:
        for packet in single or DEMO_EVENTS:
            sock.sendto(packet, (host, port))
            print(f"  → Sent {len(packet)} bytes: {packet[:24]!r}...")
            if not single:
                time.sleep(1.0)

        if noise:
            print("\nSending noise (display should keep its state)...")
            for label, packet in NOISE_EVENTS:
                sock.sendto(packet, (host, port))
                print(f"  → Sent {label}")
    finally:
        sock.close()

    print("\n✓ Done")


if __name__ == "__main__":
    main()
