"""
Create recurring GitLab issues.

Usage:
    # Show what is due and create it after confirmation
    python groundhog.py run --url https://gitlab.example.com

    # Non-interactive (cron)
    python groundhog.py run --yes

    # Only show the plan
    python groundhog.py run --dry-run --date 2024-01-31

    # Set up a new directory
    python groundhog.py init ./recurring

    # Render a template with an issue's arguments
    python groundhog.py preview my-template.md --issue "Weekly review"
"""

import argparse
import asyncio
import os
from datetime import date
from typing import Callable

from clients import GitLabClient
from dispatch import IssueCreator, apply_results, dispatch
from ledger import Ledger, LedgerError, LedgerSaveError
from models import RunConfig, RunState
from reconcile import reconcile
from schedule import ScheduleError, load_schedules
from templating import RenderError, TemplateRenderer
from utils import (
    CONFIG_FILE,
    ENV_API_KEY,
    ENV_ISSUES,
    ENV_LEDGER,
    ENV_TEMPLATES,
    ENV_URL,
    ISSUES_FILE,
    LEDGER_FILE,
    TEMPLATES_DIR,
    confirm,
    get_today,
    load_config_safe,
    parse_date,
    resolve_setting,
    run_config,
)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_PARTIAL_FAILURE = 2
EXIT_LEDGER_NOT_SAVED = 3

# ============================================================================
# Files written by `init`
# ============================================================================

EXAMPLE_ISSUES = """\
# Recurring issues. Each key is the issue title.
Weekly review:
  project: path/to/project
  start: 2024-01-01
  # end: 2024-12-31
  tempo: 1 week
  notice: 1 day
  template: my-template.md
  labels:
    - recurring
  # assignees:
  #   - gid://gitlab/User/1
  template-args:
    owner: someone
"""

EXAMPLE_TEMPLATE = """\
Recurring issue #{{ occurrence }}, due {{ due }}.

Owner: {{ owner }}
"""

EXAMPLE_CONFIG = """\
{
  "gitlab": {
    "url": "https://gitlab.example.com",
    "api_token": ""
  },
  "paths": {
    "issues": "issues.yml",
    "ledger": "ledger.json",
    "templates": "templates"
  },
  "dispatch": {
    "max_concurrency": 8,
    "timeout_s": 30
  }
}
"""


# ============================================================================
# Run
# ============================================================================


def print_plan(reconciliation, ledger: Ledger, verbose: bool = False) -> None:
    """Show the occurrences that will be created."""
    for item in reconciliation:
        due = item.payload.due_date.isoformat() if item.payload.due_date else "-"
        print(f"    {due} | #{item.occurrence:<4} | {item.name:<30} | {item.payload.project_path}")
        if verbose:
            last = ledger.last_record(item.name)
            if last:
                print(f"      [DEBUG] last created: #{last.occurrence} on {last.created} ({last.issue_id})")
            if item.payload.description:
                print(f"      [DEBUG] description: {item.payload.description[:60]!r}")


async def sync(
    issues_path: str,
    ledger_path: str,
    templates_dir: str,
    today: date,
    client: IssueCreator | None,
    yes: bool = False,
    dry_run: bool = False,
    verbose: bool = False,
    run_cfg: RunConfig | None = None,
    confirm_fn: Callable[..., bool] = confirm,
) -> int:
    """One reconciliation pass: plan, confirm, create, record."""
    run_cfg = run_cfg or RunConfig()
    state = RunState()
    mode = "DRY-RUN" if dry_run else "EXECUTE"

    print()
    print("=" * 70)
    print(f"GROUNDHOG | {today.isoformat()} | Mode: {mode}")
    print("=" * 70)
    print()

    # Load issues and ledger
    try:
        schedules = load_schedules(issues_path)
        ledger = Ledger.load(ledger_path)
    except (ScheduleError, LedgerError) as e:
        print(f"[!] ERROR: {e}")
        return EXIT_CONFIG_ERROR
    print(f"[*] Loaded {len(schedules)} recurring issues from {issues_path}")
    print(f"[*] Loaded ledger with {sum(len(ledger.occurrences(n)) for n in ledger.names())} entries")

    # Reconcile
    print()
    print("[1] Finding missing occurrences...")
    renderer = TemplateRenderer(templates_dir)
    reconciliation = reconcile(schedules, ledger, today, renderer)
    state.planned = len(reconciliation)

    for failure in reconciliation.failures:
        state.failed += 1
        state.errors.append(f"{failure.name} #{failure.occurrence}: {failure.error}")
        print(f"    [!] {failure.name} #{failure.occurrence}: {failure.error}")

    if not reconciliation.items:
        print()
        print("[*] No issues to create.")
        return print_summary(state)

    print()
    print(f"[2] Issues to create ({state.planned}):")
    print_plan(reconciliation, ledger, verbose)

    if dry_run:
        state.skipped = state.planned
        print()
        print("[-] Dry-run: nothing was created.")
        return print_summary(state)

    print()
    if not confirm_fn("Create issues?", assume_yes=yes):
        state.skipped = state.planned
        print("[-] Declined: nothing was created.")
        return print_summary(state)

    # Dispatch
    print()
    print(f"[3] Creating {state.planned} issues...")
    results = await dispatch(reconciliation.items, client, today, run_cfg.max_concurrency)
    created, failed = apply_results(ledger, results)

    for result in created:
        print(f"    [+] {result.item.name} #{result.item.occurrence} -> {result.record.issue_id}")
    for result in failed:
        state.errors.append(f"{result.item.name} #{result.item.occurrence}: {result.error}")
        print(f"    [!] {result.item.name} #{result.item.occurrence}: {result.error}")
    state.created = len(created)
    state.failed += len(failed)

    # Persist
    print()
    print(f"[4] Saving ledger to {ledger_path}...")
    try:
        ledger.save(ledger_path)
    except LedgerSaveError as e:
        print()
        print("!" * 70)
        print(f"[!] FATAL: {e}")
        print(f"[!] {state.created} issues were created in GitLab but NOT recorded.")
        print("[!] Add them to the ledger by hand before the next run, or they")
        print("[!] will be created again:")
        for result in created:
            print(f"      {result.item.name} #{result.item.occurrence}: {result.record.issue_id}")
        print("!" * 70)
        return EXIT_LEDGER_NOT_SAVED
    print("    Saved!")

    return print_summary(state)


def print_summary(state: RunState) -> int:
    """Print the run summary and return the exit code."""
    print()
    print("[*] Summary:")
    print(f"    Created: {state.created}")
    print(f"    Failed:  {state.failed}")
    print(f"    Skipped: {state.skipped}")
    for err in state.errors:
        print(f"      - {err}")
    print()
    print("[*] Done.")
    return EXIT_PARTIAL_FAILURE if state.failed else EXIT_OK


def cmd_run(args) -> int:
    config = load_config_safe(args.config)
    if config is None:
        return EXIT_CONFIG_ERROR

    issues_path = resolve_setting(args.issues, ENV_ISSUES, config, "paths", "issues", ISSUES_FILE)
    ledger_path = resolve_setting(args.log, ENV_LEDGER, config, "paths", "ledger", LEDGER_FILE)
    templates_dir = resolve_setting(
        args.templates, ENV_TEMPLATES, config, "paths", "templates", TEMPLATES_DIR
    )
    run_cfg = run_config(config)

    client = None
    if not args.dry_run:
        url = resolve_setting(args.url, ENV_URL, config, "gitlab", "url")
        token = resolve_setting(args.api_key, ENV_API_KEY, config, "gitlab", "api_token")
        if not url:
            print(f"[!] ERROR: GitLab URL not configured (--url, {ENV_URL} or config.json)")
            return EXIT_CONFIG_ERROR
        if not token:
            print(f"[!] ERROR: GitLab API key not configured (--api-key, {ENV_API_KEY} or config.json)")
            return EXIT_CONFIG_ERROR
        client = GitLabClient(url, token, timeout=run_cfg.timeout_s)

    return asyncio.run(
        sync(
            issues_path,
            ledger_path,
            templates_dir,
            args.date or get_today(),
            client,
            yes=args.yes,
            dry_run=args.dry_run,
            verbose=args.verbose,
            run_cfg=run_cfg,
        )
    )


# ============================================================================
# Init
# ============================================================================


def _write_if_missing(path: str, content: str) -> None:
    if os.path.exists(path):
        print(f"    [-] {path} exists, leaving it alone")
        return
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    print(f"    [+] {path}")


def cmd_init(args) -> int:
    print(f"[*] Setting up {args.path}...")
    os.makedirs(os.path.join(args.path, TEMPLATES_DIR), exist_ok=True)
    _write_if_missing(os.path.join(args.path, TEMPLATES_DIR, "my-template.md"), EXAMPLE_TEMPLATE)
    _write_if_missing(os.path.join(args.path, LEDGER_FILE), "{}\n")
    _write_if_missing(os.path.join(args.path, ISSUES_FILE), EXAMPLE_ISSUES)
    _write_if_missing(os.path.join(args.path, "config.example.json"), EXAMPLE_CONFIG)
    return EXIT_OK


# ============================================================================
# Preview
# ============================================================================


def cmd_preview(args) -> int:
    renderer = TemplateRenderer(args.templates)
    names = renderer.template_names()

    if args.template not in names:
        print(f"[!] Template '{args.template}' not found! Choose from the following options:")
        for name in names:
            print(f"    - {name}")
        return EXIT_CONFIG_ERROR

    template_args = {}
    if args.issue:
        try:
            schedules = load_schedules(args.issues)
        except ScheduleError as e:
            print(f"[!] ERROR: {e}")
            return EXIT_CONFIG_ERROR
        if args.issue not in schedules:
            print(f"[!] Could not find issue '{args.issue}' in {args.issues}")
            return EXIT_CONFIG_ERROR
        template_args = schedules[args.issue].template_args

    try:
        rendered = renderer.render(args.template, template_args, due=args.date or get_today(), occurrence=0)
    except RenderError as e:
        print(f"[!] ERROR: {e}")
        return EXIT_CONFIG_ERROR

    print(rendered)
    return EXIT_OK


# ============================================================================
# CLI
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="groundhog",
        description="Create recurring GitLab issues",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    groundhog run --dry-run
    groundhog run --yes
    groundhog init ./recurring
    groundhog preview my-template.md --issue "Weekly review"
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Create new recurrences of the issues in issues.yml")
    run.add_argument("-u", "--url", help=f"GitLab instance URL (env: {ENV_URL})")
    run.add_argument("-a", "--api-key", help=f"GitLab API key (env: {ENV_API_KEY})")
    run.add_argument("-i", "--issues", help=f"Recurring issue definitions (env: {ENV_ISSUES}, default: {ISSUES_FILE})")
    run.add_argument("-l", "--log", help=f"Ledger file (env: {ENV_LEDGER}, default: {LEDGER_FILE})")
    run.add_argument("-t", "--templates", help=f"Template directory (env: {ENV_TEMPLATES}, default: {TEMPLATES_DIR})")
    run.add_argument("-d", "--date", type=parse_date, help="Evaluate as of this date (YYYY-MM-DD), default: today")
    run.add_argument("-y", "--yes", action="store_true", help="Don't ask before creating issues")
    run.add_argument("--dry-run", action="store_true", help="Only show what would be created")
    run.add_argument("-v", "--verbose", action="store_true", help="Print debug output")
    run.add_argument("-c", "--config", default=CONFIG_FILE, help=f"Config file (default: {CONFIG_FILE})")
    run.set_defaults(func=cmd_run)

    init = sub.add_parser("init", help="Set up a new groundhog directory")
    init.add_argument("path", help="Directory to create (created if it doesn't exist)")
    init.set_defaults(func=cmd_init)

    preview = sub.add_parser("preview", help="Preview a rendered template")
    preview.add_argument("template", help="Template path, relative to the template directory")
    preview.add_argument(
        "-t", "--templates", default=os.environ.get(ENV_TEMPLATES, TEMPLATES_DIR),
        help="Template directory",
    )
    preview.add_argument(
        "--issues", default=os.environ.get(ENV_ISSUES, ISSUES_FILE),
        help="Recurring issue definitions",
    )
    preview.add_argument("-n", "--issue", help="Issue whose template-args to render with")
    preview.add_argument("-d", "--date", type=parse_date, help="Value for 'due' (YYYY-MM-DD), default: today")
    preview.set_defaults(func=cmd_preview)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    exit(main())
