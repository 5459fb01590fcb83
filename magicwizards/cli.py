"""
Command-line interface for Magic Wizards.

Provides commands for:
- Explaining model routing for a prompt (no provider call)
- Running a wizard once
- Showing a tenant's month-to-date usage
- Serving the HTTP API
"""

import argparse
import asyncio
import json
import sys

from magicwizards.classifier import KeywordClassifier
from magicwizards.config import Settings
from magicwizards.control_plane import WizardControlPlane
from magicwizards.definitions import DEFAULT_WIZARDS, pick_wizard
from magicwizards.errors import WizardError
from magicwizards.metrics import configure_logging
from magicwizards.policy import ModelPolicyResolver, history_length
from magicwizards.schemas import RunRequest, WizardContext
from magicwizards.storage import InMemoryStorage, SQLiteStorage
from magicwizards.validation import SANDBOX_TENANT_ID


def cmd_resolve(args):
    """Show which model a prompt would be routed to."""
    wizard = pick_wizard(args.wizard)
    classifier = KeywordClassifier()
    request = RunRequest(
        wizard=wizard,
        context=WizardContext(tenant_id=SANDBOX_TENANT_ID),
        prompt=args.prompt,
        preferred_provider=args.provider,
        preferred_model=args.model,
    )
    decision = ModelPolicyResolver(classifier=classifier).resolve(request)
    matched = classifier.matched_keywords(args.prompt)

    print("\n" + "=" * 60)
    print("MAGIC WIZARDS ROUTING")
    print("=" * 60)
    print(f"\nPrompt: {args.prompt[:100]}")
    print(f"Wizard: {wizard.id} ({wizard.name})")
    print(f"History chars: {history_length(request)}")
    print()
    print("-" * 60)
    print("DECISION")
    print("-" * 60)
    print(f"Provider: {decision.target.provider}")
    print(f"Model: {decision.target.model}")
    print(f"Reason: {decision.reason.value}")
    if matched["high_risk"]:
        print(f"High-risk keywords: {', '.join(matched['high_risk'])}")
    if matched["high_complexity"]:
        print(f"Complexity keywords: {', '.join(matched['high_complexity'])}")
    print("=" * 60)


def cmd_run(args):
    """Run a wizard once and print the reply."""
    storage = SQLiteStorage(db_path=args.db) if args.db else InMemoryStorage()
    plane = WizardControlPlane(storage=storage)

    try:
        response = asyncio.run(
            plane.run_for_tenant(args.tenant, args.prompt, wizard_id=args.wizard)
        )
    except WizardError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps({
            "text": response.text,
            "wizardId": response.wizard_id,
            "costUsd": response.cost_usd,
            "turns": response.turns,
            "provider": response.provider,
            "model": response.model,
            "reason": response.reason,
        }, indent=2))
        return

    print(response.text)
    print()
    print(f"Wizard: {response.wizard_id}")
    print(f"Used: {response.provider}/{response.model} ({response.reason})")
    print(f"Cost: ${response.cost_usd:.6f}")


def cmd_usage(args):
    """Print month-to-date usage for a tenant."""
    plane = WizardControlPlane(storage=SQLiteStorage(db_path=args.db))

    try:
        summary = asyncio.run(plane.get_usage_summary(args.tenant))
    except WizardError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(summary, indent=2))


def cmd_serve(args):
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(
        "api.main:create_app",
        factory=True,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="magicwizards",
        description="Magic Wizards - cost-governed wizard runtime",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Explain routing for a prompt
  magicwizards resolve "We need to delete the production database"

  # Run the builder wizard against the sandbox tenant
  magicwizards run "Say hello in one sentence."

  # Month-to-date usage for a tenant
  magicwizards usage tenant-123 --db wizards.db

  # Serve the API
  magicwizards serve --port 8787
""",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    resolve_parser = subparsers.add_parser("resolve", help="Show routing for a prompt")
    resolve_parser.add_argument("prompt", help="The prompt to analyze")
    resolve_parser.add_argument("--wizard", "-w", default=None,
                                choices=sorted(DEFAULT_WIZARDS),
                                help="Wizard id (default: builder)")
    resolve_parser.add_argument("--provider", help="Explicit provider override")
    resolve_parser.add_argument("--model", help="Explicit model override")

    run_parser = subparsers.add_parser("run", help="Run a wizard once")
    run_parser.add_argument("prompt", help="The prompt to send")
    run_parser.add_argument("--tenant", "-t", default=SANDBOX_TENANT_ID,
                            help="Tenant id (default: sandbox)")
    run_parser.add_argument("--wizard", "-w", help="Wizard id")
    run_parser.add_argument("--db", help="SQLite database path")
    run_parser.add_argument("--json", action="store_true", help="Print JSON")

    usage_parser = subparsers.add_parser("usage", help="Show month-to-date usage")
    usage_parser.add_argument("tenant", help="Tenant id")
    usage_parser.add_argument("--db", default="wizards.db", help="SQLite database path")

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve_parser.add_argument("--host", help="Bind host")
    serve_parser.add_argument("--port", "-p", type=int, help="Bind port")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.log_level)

    commands = {
        "resolve": cmd_resolve,
        "run": cmd_run,
        "usage": cmd_usage,
        "serve": cmd_serve,
    }

    handler = commands.get(args.command)
    if handler:
        handler(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
