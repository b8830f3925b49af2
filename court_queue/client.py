from __future__ import annotations

# Command-line client.
#
# A short-lived process:
# - connect to the broker
# - publish one command envelope
# - wait for the reply, print it and exit

import argparse
import json
import time
from typing import Any

from .config import Settings
from .mqtt_client import MqttClient
from .mqtt_topics import requests, responses


def send_command(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    command: str,
    data: dict[str, Any],
    token: str | None = None,
    timeout: float = 5.0,
) -> dict[str, Any]:
    client_id = f"court-client-{int(time.time() * 1000)}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    reply_topic = responses(client_id, namespace)

    body = dict(data)
    if token:
        body["accessToken"] = token

    try:
        return mqtt.request(
            request_topic=requests(namespace),
            response_topic=reply_topic,
            message={"command": command, "data": body},
            timeout=timeout,
        )
    finally:
        mqtt.stop()


def main(argv: list[str] | None = None) -> None:
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Send one command to the court server (MQTT)")
    parser.add_argument("command", help="e.g. getCourts, fillCourt, makePlayerWait")
    parser.add_argument("--data", default="{}", help="JSON object with the command's fields")
    parser.add_argument("--token", default=None, help="bearer access token")
    parser.add_argument("--timeout", type=float, default=5.0)
    parser.add_argument("--mqtt-host", default=settings.mqtt_host)
    parser.add_argument("--mqtt-port", type=int, default=settings.mqtt_port)
    parser.add_argument("--namespace", default=settings.namespace)
    args = parser.parse_args(argv)

    try:
        data = json.loads(args.data)
    except ValueError as e:
        parser.error(f"--data is not valid JSON: {e}")
    if not isinstance(data, dict):
        parser.error("--data must be a JSON object")

    resp = send_command(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        command=args.command,
        data=data,
        token=args.token,
        timeout=args.timeout,
    )
    resp.pop("corr_id", None)
    if resp.get("status") == 0:
        print(f"[client] {args.command}: ok")
    else:
        print(f"[client] {args.command}: error {resp.get('status')}: {resp.get('message')}")
    print(json.dumps(resp, indent=2))


if __name__ == "__main__":
    main()
