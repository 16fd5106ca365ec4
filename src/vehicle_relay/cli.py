#!/usr/bin/env python3
"""Operator CLI for Vehicle Relay.

Usage:
    vehicle-relay health                       # Probe every provider
    vehicle-relay info                         # Show dispatch config and providers
    vehicle-relay templates                    # List alert templates
    vehicle-relay validate-message "text"      # Check an alert message
    vehicle-relay call +91... +91...           # Masked call with failover
    vehicle-relay sms +91... "text"            # SMS with failover
    vehicle-relay alert VEHICLE_ID --owner-phone +91...
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Sequence

from vehicle_relay.config import get_settings
from vehicle_relay.core.exceptions import ProviderError, QuotaExceededError, RelayError
from vehicle_relay.core.logging import get_logger, setup_logging
from vehicle_relay.services.alert_templates import AlertCustomizations, TemplateCatalog
from vehicle_relay.services.dispatch import CallRequest, DispatchOutcome
from vehicle_relay.services.error_classifier import ErrorCategory
from vehicle_relay.validation.messages import validate_alert_message

log = get_logger(__name__)


def _print(data: dict[str, Any] | list[Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(data, indent=2, default=str))
        return
    if isinstance(data, list):
        for item in data:
            print(f"  {item}")
        return
    for key, value in data.items():
        print(f"  {key}: {value}")


def raise_for_outcome(outcome: DispatchOutcome) -> None:
    """Turn a failed dispatch into an exception for exit-code handling.

    Raises:
        QuotaExceededError: Every provider tried ran out of quota.
        ProviderError: The dispatch failed for any other reason.
    """
    if outcome.success:
        return
    provider = outcome.provider_used.value if outcome.provider_used else None
    if outcome.errors and all(
        error.category is ErrorCategory.QUOTA_EXCEEDED for error in outcome.errors
    ):
        raise QuotaExceededError(outcome.message, provider=provider)
    raise ProviderError(outcome.message, provider=provider)


async def _with_cleanup(coro: Any) -> Any:
    from vehicle_relay.dependencies import cleanup_dependencies

    try:
        return await coro
    finally:
        await cleanup_dependencies()


def show_health(args: argparse.Namespace) -> int:
    """Probe every provider."""
    from vehicle_relay.dependencies import get_dispatch_service

    async def run() -> bool:
        report = await get_dispatch_service().check_overall_health()
        if args.json:
            _print(report.to_dict(), True)
        else:
            print("\n=== Provider Health ===\n")
            for pid, health in report.providers.items():
                mark = "OK" if health.healthy else "FAIL"
                print(f"  [{mark}] {pid.value}: {health.message}")
            print(f"\n  overall: {'healthy' if report.overall else 'unhealthy'}")
        return report.overall

    healthy = asyncio.run(_with_cleanup(run()))
    return 0 if healthy else 2


def show_info(args: argparse.Namespace) -> int:
    """Show dispatch configuration and provider summaries."""
    from vehicle_relay.dependencies import cleanup_dependencies, get_dispatch_service

    info = get_dispatch_service().get_info()
    asyncio.run(cleanup_dependencies())
    if args.json:
        _print(info, True)
    else:
        print("\n=== Dispatch Config ===\n")
        _print(info["config"], False)
        print("\n=== Providers ===\n")
        for name, summary in info["providers"].items():
            print(f"  {name}:")
            for key, value in summary.items():
                print(f"    {key}: {value}")
    return 0


def list_templates(args: argparse.Namespace) -> int:
    """List alert templates."""
    catalog = TemplateCatalog()
    templates = catalog.all()
    if args.category:
        templates = catalog.by_category(args.category)
    elif args.severity:
        templates = catalog.by_severity(args.severity)

    if args.json:
        _print({"templates": [t.to_dict() for t in templates], "stats": catalog.stats()}, True)
        return 0

    print(f"\n=== Alert Templates ({len(templates)}) ===\n")
    for template in templates:
        default = " [default]" if template.is_default else ""
        print(f"  {template.id}{default}: {template.name} ({template.category.value}, {template.severity.value})")
    return 0


def validate_message(args: argparse.Namespace) -> int:
    """Check an alert message against the message rules."""
    check = validate_alert_message(args.message)
    if check:
        print("[OK] Message is valid")
        return 0
    print(f"[INVALID] {check.error}")
    return 1


def send_call(args: argparse.Namespace) -> int:
    """Initiate a masked call through the dispatch service."""
    from vehicle_relay.dependencies import get_dispatch_service

    request = CallRequest(caller_number=args.caller, callee_number=args.callee)
    outcome = asyncio.run(
        _with_cleanup(get_dispatch_service().dispatch_call(request, args.vehicle_id))
    )
    _print(outcome.to_dict(), args.json)
    raise_for_outcome(outcome)
    return 0


def send_sms(args: argparse.Namespace) -> int:
    """Send an SMS through the dispatch service."""
    from vehicle_relay.dependencies import get_dispatch_service

    outcome = asyncio.run(
        _with_cleanup(
            get_dispatch_service().dispatch_sms(args.to, args.body, vehicle_id=args.vehicle_id)
        )
    )
    _print(outcome.to_dict(), args.json)
    raise_for_outcome(outcome)
    return 0


def send_alert(args: argparse.Namespace) -> int:
    """Send an emergency alert to a vehicle owner."""
    from vehicle_relay.dependencies import get_alert_service, set_vehicle_directory
    from vehicle_relay.services.collaborators import StaticVehicleDirectory

    if args.owner_phone:
        set_vehicle_directory(StaticVehicleDirectory({args.vehicle_id: args.owner_phone}))

    customizations = AlertCustomizations(
        vehicle_info=args.vehicle_info,
        location=args.location,
        contact_info=args.contact,
        urgency_level=args.urgency,
    )
    outcome = asyncio.run(
        _with_cleanup(
            get_alert_service().send_emergency_alert(
                args.vehicle_id,
                template_id=args.template,
                custom_message=args.message,
                customizations=customizations,
            )
        )
    )
    _print(outcome.to_dict(), args.json)
    return 0 if outcome.status.value == "sent" else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vehicle-relay",
        description="Vehicle Relay CLI Tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--json", action="store_true", help="Output as JSON")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # health
    subparsers.add_parser("health", help="Probe every provider")

    # info
    subparsers.add_parser("info", help="Show dispatch config and providers")

    # templates
    templates_parser = subparsers.add_parser("templates", help="List alert templates")
    templates_parser.add_argument("--category", type=str, default=None)
    templates_parser.add_argument("--severity", type=str, default=None)

    # validate-message
    validate_parser = subparsers.add_parser("validate-message", help="Check an alert message")
    validate_parser.add_argument("message", type=str)

    # call
    call_parser = subparsers.add_parser("call", help="Initiate a masked call")
    call_parser.add_argument("caller", type=str, help="Party called first (E.164)")
    call_parser.add_argument("callee", type=str, help="Party bridged in (E.164)")
    call_parser.add_argument("--vehicle-id", type=str, default=None)

    # sms
    sms_parser = subparsers.add_parser("sms", help="Send an SMS")
    sms_parser.add_argument("to", type=str, help="Recipient (E.164)")
    sms_parser.add_argument("body", type=str)
    sms_parser.add_argument("--vehicle-id", type=str, default=None)

    # alert
    alert_parser = subparsers.add_parser("alert", help="Send an emergency alert")
    alert_parser.add_argument("vehicle_id", type=str)
    alert_parser.add_argument(
        "--owner-phone", type=str, default=None,
        help="Owner number to use instead of the configured directory",
    )
    alert_parser.add_argument("--template", type=str, default=None, help="Template id")
    alert_parser.add_argument("--message", type=str, default=None, help="Custom message")
    alert_parser.add_argument("--vehicle-info", type=str, default=None)
    alert_parser.add_argument("--location", type=str, default=None)
    alert_parser.add_argument("--contact", type=str, default=None)
    alert_parser.add_argument(
        "--urgency", type=str, default=None, choices=["low", "medium", "high", "critical"]
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    # Logs go to stderr so command output stays machine-readable
    setup_logging(level=settings.log_level, json_output=settings.log_json, stream=sys.stderr)

    commands = {
        "health": show_health,
        "info": show_info,
        "templates": list_templates,
        "validate-message": validate_message,
        "call": send_call,
        "sms": send_sms,
        "alert": send_alert,
    }

    try:
        return commands[args.command](args)
    except RelayError as e:
        log.error("Command failed", command=args.command, error=str(e))
        print(f"[ERROR] {e.error_code}: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
