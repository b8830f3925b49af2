from __future__ import annotations

# The court server.
#
# This file contains two layers:
# 1) `CourtService` (command handlers over a session factory, easy to unit test)
# 2) `MqttCourtService` + `main()` (envelope decoding, replies and publication
#    over an MQTT broker)
#
# Every command runs in one Transaction. Mutating commands are gated on the
# consistency auditor and, once committed, trigger a publish cycle.

import argparse
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING

from sqlalchemy.orm import Session

from . import auditor, engine, roster, views
from .auth import Authenticator, Policy, require
from .errors import BadRequest, CodeError, ConsistencyError, ErrorResponse, InternalServerError, Unauthorized, reply_envelope
from .models import NUMBER_OF_COURT_POSITIONS, Person
from .schemas import CourtFields, PersonUpdate, Registration, parse
from .transaction import Transaction

if TYPE_CHECKING:
    from .mqtt_client import MqttClient
    from .publisher import Publisher

logger = logging.getLogger(__name__)

# Envelope fields that are not part of a command's own data.
RESERVED_FIELDS = ("accessToken", "id")


@dataclass(frozen=True)
class Command:
    handler: str
    public: bool = False
    gated: bool = True
    publishes: bool = True


COMMANDS: dict[str, Command] = {
    "register": Command("register", public=True),
    "getCourts": Command("get_courts", gated=False, publishes=False),
    "getCourt": Command("get_court", gated=False, publishes=False),
    "createCourt": Command("create_court"),
    "updateCourt": Command("update_court"),
    "deleteCourt": Command("delete_court"),
    "getPeople": Command("get_people", gated=False, publishes=False),
    "getPerson": Command("get_person", gated=False, publishes=False),
    "updatePerson": Command("update_person"),
    "deletePerson": Command("delete_person"),
    "getWaiters": Command("get_waiters", gated=False, publishes=False),
    "fillCourt": Command("fill_court"),
    "clearCourt": Command("clear_court"),
    "makePlayerWait": Command("make_player_wait"),
    "makePlayerPlay": Command("make_player_play"),
    "updateGame": Command("update_game"),
    # Gates itself: report-only runs must be able to see violations.
    "checkConsistency": Command("check_consistency", gated=False),
}


def int_field(data: dict[str, Any], name: str) -> int:
    if name not in data:
        raise BadRequest(f"the request did not contain the field '{name}'")
    value = data[name]
    if isinstance(value, bool):
        raise BadRequest(f"the field '{name}' is not an integer: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise BadRequest(f"the field '{name}' is not an integer: {value!r}")


def person_ref(item: dict[str, Any], name: str) -> int | None:
    """A game position occupant: absent/null, a bare id, or `{"id": ..., "knownas": ...}`."""
    value = item.get(name)
    if value is None:
        return None
    if isinstance(value, dict):
        return int_field(value, "id")
    return int_field({name: value}, name)


def parse_game_positions(data: dict[str, Any]) -> dict[int, engine.GamePosition]:
    items = data.get("positions")
    if not isinstance(items, list):
        raise BadRequest(f"unexpected type: 'positions': {type(items).__name__}")
    positions: dict[int, engine.GamePosition] = {}
    for item in items:
        if not isinstance(item, dict):
            raise BadRequest(f"unexpected type: 'item': {type(item).__name__}")
        index = int_field(item, "index")
        if index < 0 or index >= NUMBER_OF_COURT_POSITIONS:
            raise BadRequest(f"unexpected request data: index: {index}")
        if index in positions:
            raise BadRequest(f"repeated index in request data: index: {index}")
        positions[index] = engine.GamePosition(value=person_ref(item, "value"), original=person_ref(item, "original"))
    return positions


def command_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in RESERVED_FIELDS}


class CourtService:
    """Command handlers (testable without MQTT)."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        authenticate: Authenticator,
        policy: Policy | None = None,
        clock: engine.Clock = engine.utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._authenticate = authenticate
        self.policy = policy or Policy()
        self.clock = clock

    def publishes(self, command: str) -> bool:
        cmd = COMMANDS.get(command)
        return cmd is not None and cmd.publishes

    def execute(self, command: str, data: dict[str, Any]) -> Any:
        """Authenticate, authorize and run one command; returns the reply payload."""
        cmd = COMMANDS.get(command)
        if cmd is None:
            raise BadRequest(f"Unknown command: {command}")

        user_id = None
        if not cmd.public:
            token = data.get("accessToken")
            user_id = self._authenticate(token if isinstance(token, str) else "")

        handler = getattr(self, cmd.handler)
        with Transaction(self._session_factory, gated=cmd.gated, clock=self.clock) as session:
            user = self._load_user(session, user_id) if user_id is not None else None
            return handler(session, user, data)

    def _load_user(self, session: Session, user_id: int) -> Person:
        user = session.get(Person, user_id)
        if user is None:
            raise Unauthorized(f"Unknown user [{user_id}]")
        return user

    # -------------------- people --------------------

    def register(self, session: Session, user: Person | None, data: dict[str, Any]) -> dict[str, Any]:
        registration = parse(Registration, command_fields(data))
        person = roster.register(session, registration)
        return {"id": person.id}

    def get_people(self, session: Session, user: Person, data: dict[str, Any]) -> list[dict[str, Any]]:
        filter_name = data.get("filter", "all")
        if not isinstance(filter_name, str):
            raise BadRequest(f"the field 'filter' is not a string: {filter_name!r}")
        return [p.to_limited() for p in roster.list_people(session, filter_name)]

    def get_person(self, session: Session, user: Person, data: dict[str, Any]) -> dict[str, Any]:
        return engine.load_person(session, int_field(data, "id")).to_limited()

    def update_person(self, session: Session, user: Person, data: dict[str, Any]) -> dict[str, Any]:
        person_id = int_field(data, "id")
        require(self.policy.can_edit_person(user, person_id), self._not_allowed_to_edit(user, person_id))
        update = parse(PersonUpdate, command_fields(data))
        if update.status is not None:
            require(self.policy.can_maintain(user), "Not allowed to change status")
        return roster.update_person(session, person_id, update, clock=self.clock).to_limited()

    def delete_person(self, session: Session, user: Person, data: dict[str, Any]) -> None:
        person_id = int_field(data, "id")
        require(self.policy.can_edit_person(user, person_id), self._not_allowed_to_edit(user, person_id))
        roster.delete_person(session, person_id)

    @staticmethod
    def _not_allowed_to_edit(user: Person, person_id: int) -> str:
        return "Not allowed to edit self" if user.id == person_id else "Not allowed to edit other people"

    def get_waiters(self, session: Session, user: Person, data: dict[str, Any]) -> list[dict[str, Any]]:
        return views.waiter_detail(session)

    # -------------------- courts --------------------

    def get_courts(self, session: Session, user: Person, data: dict[str, Any]) -> list[dict[str, Any]]:
        return [views.court_detail(session, c) for c in roster.list_courts(session)]

    def get_court(self, session: Session, user: Person, data: dict[str, Any]) -> dict[str, Any]:
        return views.court_detail(session, engine.load_court(session, int_field(data, "id")))

    def create_court(self, session: Session, user: Person, data: dict[str, Any]) -> dict[str, Any]:
        self._require_court_editor(user)
        court = roster.create_court(session, parse(CourtFields, command_fields(data)))
        return {"id": court.id}

    def update_court(self, session: Session, user: Person, data: dict[str, Any]) -> None:
        self._require_court_editor(user)
        roster.update_court(session, int_field(data, "id"), parse(CourtFields, command_fields(data)))

    def delete_court(self, session: Session, user: Person, data: dict[str, Any]) -> None:
        self._require_court_editor(user)
        roster.delete_court(session, int_field(data, "id"), clock=self.clock)

    def _require_court_editor(self, user: Person) -> None:
        require(self.policy.can_edit_court(user), f"Person [{user.id}] is not allowed to edit courts")

    # -------------------- queue / courts --------------------

    def fill_court(self, session: Session, user: Person, data: dict[str, Any]) -> list[dict[str, Any]]:
        self._require_court_editor(user)
        return [p.to_dict() for p in engine.fill_court(session, int_field(data, "id"))]

    def clear_court(self, session: Session, user: Person, data: dict[str, Any]) -> None:
        self._require_court_editor(user)
        engine.clear_court(session, int_field(data, "id"), clock=self.clock)

    def make_player_wait(self, session: Session, user: Person, data: dict[str, Any]) -> None:
        self._require_court_editor(user)
        engine.make_player_wait(session, int_field(data, "id"), clock=self.clock)

    def make_player_play(self, session: Session, user: Person, data: dict[str, Any]) -> None:
        self._require_court_editor(user)
        person_id = int_field(data, "id")
        engine.load_player(session, person_id)
        if not engine.waiters_for_person(session, person_id):
            raise BadRequest(f"cannot make player [{person_id}] play as the player is not waiting")
        engine.make_player_play(session, person_id, int_field(data, "court"), int_field(data, "position"))

    def update_game(self, session: Session, user: Person, data: dict[str, Any]) -> list[dict[str, Any]]:
        self._require_court_editor(user)
        court_id = int_field(data, "court")
        positions = engine.update_game(session, court_id, parse_game_positions(data), clock=self.clock)
        return [p.to_dict() for p in positions]

    # -------------------- maintenance --------------------

    def check_consistency(self, session: Session, user: Person, data: dict[str, Any]) -> dict[str, Any]:
        require(self.policy.can_maintain(user), "Not allowed to check consistency")
        fix = data.get("fix", False)
        if not isinstance(fix, bool):
            raise BadRequest(f"the field 'fix' is not a boolean: {fix!r}")

        count = auditor.check_consistency(session, fix=fix, clock=self.clock)
        if fix:
            remaining = auditor.check_consistency(session, clock=self.clock)
            if remaining:
                raise ConsistencyError(remaining)
        return {"count": count, "fixed": fix}


class MqttCourtService:
    """MQTT adapter around the CourtService handlers."""

    def __init__(
        self,
        *,
        mqtt: MqttClient,
        service: CourtService,
        publisher: Publisher,
        namespace: str,
    ) -> None:
        from .mqtt_topics import requests

        self.mqtt = mqtt
        self.service = service
        self.publisher = publisher
        self.namespace = namespace
        self._requests_topic = requests(namespace)
        self._request_counter = 0

    def start(self) -> None:
        self.mqtt.subscribe(self._requests_topic)
        self.mqtt.add_handler(self._handle_message)
        # Subscribers joining later still need a first copy of every view.
        self.publisher.update()

    def _reply(self, reply_to: str, corr_id: str | None, message: dict[str, Any]) -> None:
        msg = dict(message)
        if corr_id is not None:
            msg["corr_id"] = corr_id
        self.mqtt.publish(reply_to, msg)

    def _handle_message(self, topic: str, msg: dict[str, Any]) -> None:
        if topic != self._requests_topic:
            return

        self._request_counter += 1
        request_id = self._request_counter

        corr_id = msg.get("corr_id") if isinstance(msg.get("corr_id"), str) else None
        reply_to = msg.get("replyTopic") if isinstance(msg.get("replyTopic"), str) else None
        if not reply_to:
            logger.warning("[request:%d] the request did not contain the field 'replyTopic'", request_id)
            return

        command = msg.get("command")
        logger.debug("[request:%d] command=%s", request_id, command)
        self._reply(reply_to, corr_id, self.dispatch(request_id, command, msg.get("data", {})))

    def dispatch(self, request_id: int, command: Any, data: Any) -> dict[str, Any]:
        """Run one decoded command and build its reply envelope."""
        try:
            if not isinstance(command, str) or not command:
                raise BadRequest("the request did not contain the field 'command'")
            if not isinstance(data, dict):
                raise BadRequest(f"the field 'data' is not an object: {data!r}")

            payload = self.service.execute(command, data)
        except CodeError as e:
            logger.info("[request:%d] %s failed: %d %s", request_id, command, e.status, e.message)
            return ErrorResponse.from_exception(e).to_message()
        except Exception as e:
            logger.exception("[request:%d] %s failed unexpectedly", request_id, command)
            return ErrorResponse.from_exception(InternalServerError(str(e) or type(e).__name__)).to_message()

        # The command is already committed, so it still replies ok.
        if self.service.publishes(command):
            try:
                self.publisher.update()
            except Exception:
                logger.exception("[request:%d] publishing after %s failed", request_id, command)

        return reply_envelope(payload)


def main(argv: list[str] | None = None) -> None:
    from .auth import JwtAuthenticator
    from .config import Settings
    from .database import database_ready, make_engine, make_session_factory
    from .mqtt_client import MqttClient
    from .mqtt_topics import publication
    from .publisher import Publisher

    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Court queue server (MQTT)")
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument("--mqtt-host", default=settings.mqtt_host)
    parser.add_argument("--mqtt-port", type=int, default=settings.mqtt_port)
    parser.add_argument("--namespace", default=settings.namespace)
    args = parser.parse_args(argv)

    db_engine = make_engine(args.database_url)
    if not database_ready(db_engine):
        raise SystemExit(f"[server] database at {args.database_url} has no tables; run create-tables first")
    session_factory = make_session_factory(db_engine)

    mqtt_client = MqttClient(client_id=f"court-server-{int(time.time() * 1000)}", host=args.mqtt_host, port=args.mqtt_port)
    mqtt_client.start()

    service = CourtService(session_factory, authenticate=JwtAuthenticator(settings.jwt_secret))
    publisher = Publisher(session_factory, mqtt_client, topic=lambda name: publication(name, args.namespace))
    server = MqttCourtService(mqtt=mqtt_client, service=service, publisher=publisher, namespace=args.namespace)
    server.start()

    print(f"[server] connected to MQTT {args.mqtt_host}:{args.mqtt_port}, namespace={args.namespace}")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        mqtt_client.stop()
        db_engine.dispose()


if __name__ == "__main__":
    main()
