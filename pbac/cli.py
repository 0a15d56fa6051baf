"""
Interactive operator console for the decision engine.
Identify as a principal, then run checks, batches, filters and reports.
"""

import shlex
from datetime import datetime, timezone

from pbac.api.app import build_engine
from pbac.database import init_engine
from pbac.logging_setup import configure_logging
from pbac.models import Principal
from pbac.reporting import format_report

HELP = """Commands:
  check <type> <id> <action> [hours_until_event] [policy_window_hours]
  batch <type> <action> <id> [<id> ...]
  filter <type> <permission>
  permissions
  report [principal_id]
  quit"""


def _principal(record) -> Principal:
    return Principal(
        id=record.id,
        role=record.role,
        status=record.status,
        decision_timestamp=datetime.now(timezone.utc),
        session_id="console",
    )


def _business_context(extra):
    context = {}
    if len(extra) > 0:
        context["hours_until_event"] = float(extra[0])
    if len(extra) > 1:
        context["policy_window_hours"] = float(extra[1])
    return context


def run_command(decision_engine, record, line: str) -> bool:
    """Run one console line. Returns False when the session should end."""
    parts = shlex.split(line)
    if not parts:
        return True
    command, args = parts[0].lower(), parts[1:]

    if command in {"quit", "exit"}:
        print("Goodbye.")
        return False

    if command == "help":
        print(HELP)

    elif command == "check" and len(args) >= 3:
        resource_type, resource_id, action = args[:3]
        result = decision_engine.evaluate(
            resource_type, resource_id, action, _principal(record), _business_context(args[3:])
        )
        if result.authorized:
            print(f"\n[ALLOW] {action} {resource_type} {resource_id}")
            print(f"  permissions: {', '.join(sorted(result.granted_permissions))}")
            for condition in result.conditions:
                print(f"  condition:   {condition}")
        else:
            print(f"\n[DENY] {action} {resource_type} {resource_id}")
            print(f"  reason: {result.reason}")
        print(f"  audit id: {result.audit_id}")

    elif command == "batch" and len(args) >= 3:
        resource_type, action, ids = args[0], args[1], args[2:]
        batch = decision_engine.evaluate_batch(resource_type, ids, action, _principal(record))
        print(f"\n[batch] {batch.summary}")
        print(f"  authorized: {', '.join(batch.authorized) or '(none)'}")
        for denied in batch.denied:
            print(f"  denied {denied['id']}: {denied['reason']}")

    elif command == "filter" and len(args) == 2:
        artifact = decision_engine.build_filter(_principal(record), args[0], args[1])
        print(f"\n[filter] WHERE {artifact.predicate}")
        if artifact.parameters:
            print(f"  parameters: {artifact.parameters}")

    elif command == "permissions":
        summary = decision_engine.permissions_of(record.id)
        print(f"\n[permissions] role={summary.role}")
        for permission in summary.permissions:
            print(f"  - {permission}")
        for restriction in summary.restrictions:
            print(f"  ! {restriction}")

    elif command == "report":
        report = decision_engine.security_report(args[0] if args else None)
        print()
        print(format_report(report))

    else:
        print("[WARN] Unrecognised command.")
        print(HELP)

    return True


def repl(decision_engine):
    # ── Identify ─────────────────────────────────────────────────────
    try:
        principal_id = input("Enter principal id (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not principal_id or principal_id.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    try:
        record = decision_engine.principals.fetch(principal_id)
    except Exception as e:
        print("\n[ERROR] Principal lookup failed.")
        print("Details:", e)
        return
    if record is None:
        print("\n[ERROR] Principal not found.")
        return

    print(f"\n[auth] Acting as: {record.id} (role={record.role}, status={record.status})")
    print(HELP)

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            line = input("\npbac> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        try:
            if not run_command(decision_engine, record, line):
                break
        except ValueError as e:
            print("\n[ERROR] Invalid arguments.")
            print("Details:", e)


def main():
    print("=== PBAC Decision Engine: Operator Console ===\n")
    configure_logging(fmt="console")
    repl(build_engine(init_engine()))


if __name__ == "__main__":
    main()
