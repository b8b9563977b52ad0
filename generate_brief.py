#!/usr/bin/env python3
"""Daily Brief: collect, cluster, summarize, de-duplicate and store today's brief."""

import argparse
import sys
import logging
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime
from pathlib import Path

import anthropic

from dailybrief.briefs import generate_brief
from dailybrief.config import check_term_alignment, get_domain, load_config
from dailybrief.storage.factory import open_storage


def setup_logging(log_path: Path):
    """Set up rotating file handler for pipeline logs."""
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Rotates at midnight, keeps 7 days
    handler = TimedRotatingFileHandler(
        filename=log_path,
        when='midnight',
        interval=1,
        backupCount=7,
        encoding='utf-8'
    )
    handler.suffix = '%Y-%m-%d'

    logging.basicConfig(
        level=logging.INFO,
        format='%(message)s',
        handlers=[handler, logging.StreamHandler(sys.stdout)]
    )

    return logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--domain", help="Domain to generate (default: the configured default domain)")
    parser.add_argument("--all-domains", action="store_true", help="Generate a brief for every configured domain")
    parser.add_argument("--force", action="store_true", help="Regenerate even if today's brief exists")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    cfg = load_config()
    logger = setup_logging(Path(cfg["log_path"]))

    start_time = datetime.now()
    logger.info("\n" + "=" * 60)
    logger.info("Daily Brief — Generation Pipeline")
    logger.info(f"Started: {start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info("=" * 60)

    logger.info("\n[1/3] Loading configuration...")
    api_key = cfg.get("anthropic_api_key", "")
    if not api_key:
        logger.error("ERROR: No Anthropic API key found.")
        logger.error("Set ANTHROPIC_API_KEY env var or add to config.yaml")
        sys.exit(1)

    domains = list(cfg["domains"]) if args.all_domains else [args.domain or cfg["default_domain"]]
    for name in domains:
        try:
            check_term_alignment(get_domain(cfg, name))
        except KeyError as e:
            logger.error(f"ERROR: {e}")
            sys.exit(1)

    logger.info("[2/3] Opening storage...")
    storage = open_storage(cfg)
    client = anthropic.Anthropic(api_key=api_key)

    results = {}
    failed = []
    for name in domains:
        logger.info(f"\n[3/3] Generating brief for '{name}'" + (" (forced)" if args.force else "") + "...")
        try:
            report = generate_brief(storage, client, cfg, name, force=args.force)
        except Exception as e:
            logger.error(f"  Brief generation for '{name}' failed: {e}", exc_info=True)
            failed.append(name)
            continue
        results[name] = report

    storage.close()

    end_time = datetime.now()
    duration = (end_time - start_time).total_seconds()
    logger.info("\n" + "=" * 60)
    logger.info("Pipeline Complete!" if not failed else "Pipeline finished with errors")
    logger.info(f"  Started:     {start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f"  Finished:    {end_time.strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f"  Duration:    {duration:.1f}s")
    for name, report in results.items():
        logger.info(f"  {name:<12} {report.date}: {report.total_issues} issues")
    for name in failed:
        logger.info(f"  {name:<12} FAILED")
    logger.info("=" * 60)

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
