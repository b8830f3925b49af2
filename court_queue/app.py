from __future__ import annotations

# Single entrypoint.
#
#     python -m court_queue.app serve
#     python -m court_queue.app request getCourts --token ...
#
# plus the maintenance commands (create-tables, drop-tables, populate, check)
# that work directly against the database.

import argparse
import logging

from .config import Settings


def main(argv: list[str] | None = None) -> None:
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Court Queue (MQTT) - main entrypoint")
    parser.add_argument("--log-level", default=settings.log_level, help="DEBUG, INFO, WARNING, ...")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_mqtt_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--mqtt-host", default=settings.mqtt_host)
        p.add_argument("--mqtt-port", type=int, default=settings.mqtt_port)
        p.add_argument("--namespace", default=settings.namespace)

    def add_db_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--database-url", default=settings.database_url)

    p_serve = sub.add_parser("serve", help="Run the court server")
    add_mqtt_args(p_serve)
    add_db_args(p_serve)

    p_req = sub.add_parser("request", help="Send one command to a running server and print the reply")
    add_mqtt_args(p_req)
    p_req.add_argument("command")
    p_req.add_argument("--data", default="{}", help="JSON object with the command's fields")
    p_req.add_argument("--token", default=None)

    p_create = sub.add_parser("create-tables", help="Create the people/courts/playing/waiting tables")
    add_db_args(p_create)
    p_create.add_argument("--attempts", type=int, default=10)
    p_create.add_argument("--delay", type=float, default=1.0, help="seconds between visibility checks")

    p_drop = sub.add_parser("drop-tables", help="Drop all tables")
    add_db_args(p_drop)
    p_drop.add_argument("--attempts", type=int, default=10)
    p_drop.add_argument("--delay", type=float, default=1.0)

    p_pop = sub.add_parser("populate", help="Add sample people and courts")
    add_db_args(p_pop)
    p_pop.add_argument("--clear", action="store_true", help="delete everything except administrators first")

    p_check = sub.add_parser("check", help="Audit people against the queue and courts")
    add_db_args(p_check)
    p_check.add_argument("--fix", action="store_true", help="repair what is found")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "serve":
        from .service import main as run

        run(["--database-url", args.database_url, *_mqtt_argv(args)])
        return

    if args.cmd == "request":
        from .client import main as run

        run_args = [args.command, "--data", args.data, *_mqtt_argv(args)]
        if args.token:
            run_args += ["--token", args.token]
        run(run_args)
        return

    from .database import Retry, create_tables, drop_tables, make_engine, make_session_factory

    db_engine = make_engine(args.database_url)
    try:
        if args.cmd == "create-tables":
            create_tables(db_engine, retry=Retry(attempts=args.attempts, delay=args.delay))
            print(f"[tables] created in {args.database_url}")
        elif args.cmd == "drop-tables":
            drop_tables(db_engine, retry=Retry(attempts=args.attempts, delay=args.delay))
            print(f"[tables] dropped from {args.database_url}")
        elif args.cmd == "populate":
            _populate(make_session_factory(db_engine), clear=args.clear)
        elif args.cmd == "check":
            _check(make_session_factory(db_engine), fix=args.fix)
    finally:
        db_engine.dispose()


def _mqtt_argv(args: argparse.Namespace) -> list[str]:
    return ["--mqtt-host", args.mqtt_host, "--mqtt-port", str(args.mqtt_port), "--namespace", args.namespace]


def _populate(session_factory, *, clear: bool) -> None:
    from . import roster
    from .transaction import Transaction

    with Transaction(session_factory) as session:
        if clear:
            roster.delete_all_records(session)
        roster.populate(session)
    print(f"[populate] added {len(roster.SAMPLE_PEOPLE)} people and {len(roster.SAMPLE_COURTS)} courts")


def _check(session_factory, *, fix: bool) -> None:
    from . import auditor
    from .transaction import Transaction

    if fix:
        tx = Transaction(session_factory, fix=True)
        with tx:
            pass
        print(f"[check] repaired {tx.repaired} violation(s)")
        return

    with Transaction(session_factory, gated=False) as session:
        count = auditor.check_consistency(session)
    print(f"[check] {count} violation(s)")
    if count:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
