from court_queue.errors import BadRequest, ErrorResponse, NotFound, reply_envelope
from court_queue.mqtt_client import decode
from court_queue.mqtt_topics import publication, requests, responses


def test_topic_helpers():
    ns = "demo/v0"
    assert requests(ns) == "demo/v0/request"
    assert responses("c1", ns) == "demo/v0/response/c1"
    assert publication("getCourt/3", ns) == "demo/v0/getCourt/3"


def test_reply_envelopes():
    assert reply_envelope() == {"status": 0, "message": "ok"}
    assert reply_envelope([1]) == {"status": 0, "message": "ok", "payload": [1]}
    assert ErrorResponse.from_exception(NotFound("Court [9] not found")).to_message() == {
        "status": 404,
        "message": "Court [9] not found",
    }
    assert ErrorResponse.from_exception(BadRequest("x")).status == 400
    assert ErrorResponse.from_exception(RuntimeError("boom")) == ErrorResponse(500, "boom")


def test_decode_accepts_only_json_objects():
    assert decode(b'{"command":"getCourts"}') == {"command": "getCourts"}
    assert decode('{"a":1}') == {"a": 1}
    assert decode(b"[1,2]") is None
    assert decode(b"not json") is None
