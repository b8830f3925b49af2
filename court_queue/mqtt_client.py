"""paho-mqtt connection used by the court server and the command-line client.

The server side only needs `subscribe`, `add_handler` and the two publish
calls. The client side sends one command with `request()`, which listens on
its own reply topic and matches the reply by `corr_id`.

Everything goes out at QoS 0: replies and publications are whole snapshots,
so a lost one is repaired by the next.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import uuid
from typing import Any, Callable

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, dict[str, Any]], None]
Reply = dict[str, Any]


def decode(payload: bytes | str) -> dict[str, Any] | None:
    """JSON object carried by a message, or None when it is not one."""
    text = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else str(payload)
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class MqttClient:
    def __init__(self, *, client_id: str, host: str, port: int, keepalive: int = 30) -> None:
        self.client_id = client_id
        self.host = host
        self.port = port
        self.keepalive = keepalive

        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True)
        self._client.on_message = self._on_message

        self._handlers: list[MessageHandler] = []
        self._replies: dict[str, queue.Queue[Reply]] = {}
        self._replies_lock = threading.Lock()
        self._connected = False

    def start(self) -> None:
        if self._connected:
            return
        self._client.connect(self.host, self.port, keepalive=self.keepalive)
        self._client.loop_start()
        self._connected = True
        logger.info("connected to MQTT %s:%d as %s", self.host, self.port, self.client_id)

    def stop(self) -> None:
        if self._connected:
            self._client.loop_stop()
            self._client.disconnect()
            self._connected = False

    def add_handler(self, handler: MessageHandler) -> None:
        """`handler(topic, message)` sees every decoded message that is not an awaited reply."""
        self._handlers.append(handler)

    def subscribe(self, topic: str) -> None:
        self._client.subscribe(topic, qos=0)

    def publish(self, topic: str, message: dict[str, Any]) -> None:
        self.publish_text(topic, json.dumps(message, separators=(",", ":")))

    def publish_text(self, topic: str, payload: str) -> None:
        self._client.publish(topic, payload=payload.encode("utf-8"), qos=0)

    def request(self, *, request_topic: str, response_topic: str, message: dict[str, Any], timeout: float = 5.0) -> Reply:
        """Send a command envelope and block until its reply arrives on `response_topic`."""
        corr_id = uuid.uuid4().hex
        inbox: queue.Queue[Reply] = queue.Queue(maxsize=1)
        with self._replies_lock:
            self._replies[corr_id] = inbox

        self.subscribe(response_topic)
        try:
            self.publish(request_topic, {**message, "corr_id": corr_id, "replyTopic": response_topic})
            return inbox.get(timeout=timeout)
        except queue.Empty as e:
            raise TimeoutError(f"no reply on {response_topic} within {timeout}s") from e
        finally:
            with self._replies_lock:
                del self._replies[corr_id]
            self._client.unsubscribe(response_topic)

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        data = decode(msg.payload)
        if data is None:
            logger.warning("ignoring message on %s: not a JSON object", msg.topic)
            return

        with self._replies_lock:
            inbox = self._replies.get(data.get("corr_id"))
        if inbox is not None:
            if inbox.full():
                logger.debug("duplicate reply on %s dropped", msg.topic)
            else:
                inbox.put_nowait(data)
            return

        for handler in list(self._handlers):
            try:
                handler(msg.topic, data)
            except Exception:
                # The network loop must survive; handlers reply on their own.
                logger.exception("message handler failed on %s", msg.topic)
