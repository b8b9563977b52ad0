#!/usr/bin/env python3
"""Inspect stored briefs and run report jobs from the command line."""

import argparse
import json
import logging
import sys

import anthropic

from dailybrief import briefs
from dailybrief.activity import record_activity, recent_activity
from dailybrief.config import load_config
from dailybrief.jobs import JobRunner
from dailybrief.reports.aggregated import (
    ReportRequest,
    ReportType,
    SelectionMethod,
    UsageLimitExceededError,
    clear_cart_requests,
    get_cart_requests,
    request_custom_report,
)
from dailybrief.storage.factory import open_storage

logger = logging.getLogger("manage_briefs")


def _print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _client(cfg):
    if not cfg.get("anthropic_api_key"):
        sys.exit("ERROR: No Anthropic API key found. Set ANTHROPIC_API_KEY or add it to config.yaml")
    return anthropic.Anthropic(api_key=cfg["anthropic_api_key"])


def _runner(cfg, storage):
    return JobRunner(
        storage,
        timeout_seconds=cfg["job_timeout_seconds"],
        ttl_seconds=cfg["job_ttl_seconds"],
    )


def _follow(runner, kind, job_id, interval):
    """Poll a job until it finishes, printing each status change."""
    print(f"Job {kind}/{job_id} started")

    def show(status):
        print(f"  [{status.get('progress', 0):>3}%] {status.get('status')}: {status.get('message', '')}")

    final = runner.wait_for(kind, job_id, interval=interval, on_update=show)
    if final is None:
        print("Job status expired or unknown")
        return 1
    if final["status"] == "failed":
        print(f"Job failed: {final.get('error')}")
        return 1
    print()
    print(final.get("report", ""))
    return 0


def cmd_show(args, cfg, storage):
    if args.date:
        report = briefs.get_brief(storage, cfg, args.date, args.domain)
    else:
        report = briefs.latest_brief(storage, cfg, args.domain)
    if args.json:
        _print_json(report.to_dict())
    else:
        print(report.markdown)
    return 0


def cmd_list(args, cfg, storage):
    for entry in briefs.list_briefs(storage, cfg, args.domain, limit=args.limit, include_issues=args.full):
        if args.full:
            _print_json(entry)
        else:
            print(f"{entry['date']}  {entry['dayOfWeek']:<9}  {entry['totalIssues']} issues")
            for headline in entry["headlines"]:
                print(f"    - {headline}")
    return 0


def cmd_delete(args, cfg, storage):
    key = briefs.delete_brief(storage, cfg, args.date, args.domain)
    print(f"Deleted brief {key}")
    return 0


def cmd_trend(args, cfg, storage):
    report = briefs.get_brief(storage, cfg, args.date, args.domain) if args.date else briefs.latest_brief(storage, cfg, args.domain)
    if not 1 <= args.issue <= len(report.issues):
        sys.exit(f"ERROR: brief {report.date} has {len(report.issues)} issues; pick 1-{len(report.issues)}")
    issue = report.issues[args.issue - 1]

    runner = _runner(cfg, storage)
    try:
        kind, job_id = briefs.start_trend_report(runner, _client(cfg), cfg, issue, args.domain)
        if args.detach:
            print(f"{kind} {job_id}")
            return 0
        return _follow(runner, kind, job_id, args.interval)
    finally:
        runner.shutdown(wait=not args.detach)


def cmd_weekly(args, cfg, storage):
    runner = _runner(cfg, storage)
    try:
        kind, job_id = briefs.start_weekly_report(runner, storage, _client(cfg), cfg, args.domain)
        if args.detach:
            print(f"{kind} {job_id}")
            return 0
        return _follow(runner, kind, job_id, args.interval)
    finally:
        runner.shutdown(wait=not args.detach)


def cmd_status(args, cfg, storage):
    status = briefs.get_job_status(_runner(cfg, storage), args.kind, args.job_id)
    if status is None:
        print("Unknown or expired job")
        return 1
    _print_json(status)
    return 0


def cmd_report(args, cfg, storage):
    if args.start or args.end:
        method = SelectionMethod.AUTO_DATE
    elif args.url or args.text:
        method = SelectionMethod.MANUAL_ONLY
    else:
        sys.exit("ERROR: give --start/--end, or at least one --url/--text")

    request = ReportRequest(
        report_type=ReportType(args.type),
        selection_method=method,
        start_date=args.start,
        end_date=args.end,
        domain=None if args.domain in (None, cfg["default_domain"]) else args.domain,
        urls=args.url or [],
        texts=args.text or [],
    )
    try:
        result = request_custom_report(storage, _client(cfg), cfg, request, ip=args.ip)
    except UsageLimitExceededError as e:
        print(f"ERROR: {e}")
        return 1
    print(result["report"])
    print(f"\n({result['issueCount']} issues used, {result['remaining']} reports left today)")
    return 0


def cmd_logs(args, cfg, storage):
    _print_json([entry.to_dict() for entry in recent_activity(storage, args.limit)])
    return 0


def cmd_log_activity(args, cfg, storage):
    metadata = json.loads(args.metadata) if args.metadata else None
    entry = record_activity(storage, args.action, args.target, metadata=metadata)
    _print_json(entry.to_dict())
    return 0


def cmd_cart_requests(args, cfg, storage):
    if args.clear:
        clear_cart_requests(storage)
        print("Cleared report requests")
    else:
        _print_json(get_cart_requests(storage))
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--domain", help="Domain (default: the configured default domain)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("show", help="Print a brief (latest if no date)")
    p.add_argument("date", nargs="?")
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("list", help="List recent briefs")
    p.add_argument("--limit", type=int, default=30)
    p.add_argument("--full", action="store_true", help="Include full issues")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("delete", help="Delete today's brief")
    p.add_argument("date")
    p.set_defaults(func=cmd_delete)

    for name, func, help_text in (
        ("trend", cmd_trend, "Deep-dive report on one issue"),
        ("weekly", cmd_weekly, "Weekly aggregate report"),
    ):
        p = sub.add_parser(name, help=help_text)
        if name == "trend":
            p.add_argument("--date", help="Brief date (default: latest)")
            p.add_argument("--issue", type=int, default=1, help="Issue number within the brief")
        p.add_argument("--interval", type=float, default=2.0, help="Polling interval in seconds")
        p.add_argument("--detach", action="store_true", help="Print the job id instead of polling (the job still runs to completion)")
        p.set_defaults(func=func)

    p = sub.add_parser("status", help="Show a report job's status")
    p.add_argument("kind", help="Job kind, e.g. trend, weekly, battery_trend")
    p.add_argument("job_id")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("report", help="Generate a custom aggregated report")
    p.add_argument("--type", choices=[t.value for t in ReportType], default=ReportType.CUSTOM.value)
    p.add_argument("--start")
    p.add_argument("--end")
    p.add_argument("--url", action="append")
    p.add_argument("--text", action="append")
    p.add_argument("--ip", default="127.0.0.1")
    p.set_defaults(func=cmd_report)

    p = sub.add_parser("logs", help="Show recent activity")
    p.add_argument("--limit", type=int, default=100)
    p.set_defaults(func=cmd_logs)

    p = sub.add_parser("log-activity", help="Record an activity entry")
    p.add_argument("action")
    p.add_argument("target")
    p.add_argument("--metadata", help="JSON object")
    p.set_defaults(func=cmd_log_activity)

    p = sub.add_parser("cart-requests", help="Show or clear custom report requests")
    p.add_argument("--clear", action="store_true")
    p.set_defaults(func=cmd_cart_requests)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(message)s', handlers=[logging.StreamHandler(sys.stderr)])
    cfg = load_config()
    storage = open_storage(cfg)
    try:
        return args.func(args, cfg, storage)
    except (briefs.BriefNotFoundError, briefs.DomainMismatchError, briefs.DeletionRefusedError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        storage.close()


if __name__ == "__main__":
    sys.exit(main())
