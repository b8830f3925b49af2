"""MQTT topic helpers.

We keep topic construction in one place so the server, the CLI client and any
app agree on naming.

Topic layout under a configurable namespace (default: `courtqueue/v0`):

Request/response:
- `<ns>/request`
    Every command envelope goes here; it names its own `replyTopic`.
- `<ns>/response/<client_id>`
    Conventional reply topic for a client.

Publications (sent only when their content changes):
- `<ns>/getCourts`, `<ns>/getCourt/<id>`
- `<ns>/getPeople/<filter>`, `<ns>/getPerson/<id>`
- `<ns>/getWaiters`
"""

from __future__ import annotations

DEFAULT_NAMESPACE = "courtqueue/v0"


def requests(namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/request"


def responses(client_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/response/{client_id}"


def publication(name: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Full topic for a logical publication name such as `getCourt/3`."""
    return f"{namespace}/{name}"
