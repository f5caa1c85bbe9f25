##########################################################################################
#
# Script name: main.py
#
# Description: CLI entrypoint for running the report pipeline once or on a schedule.
#
##########################################################################################

import argparse
import asyncio
import logging
import os
import sys
from datetime import date

from .agents import build_decision_services
from .config import DEFAULT_CONFIG_FILE, PIPELINE_INTERVAL_HOURS, PipelineConfig, load_pipeline_config
from .pipeline import PipelineSummary, build_pipeline
from .providers import RssNewsProvider, SampleNewsProvider
from .store import load_snapshot, save_snapshot


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(os.path.basename(sys.argv[0]))
log.setLevel(logging.DEBUG)
log.propagate = False
formatter = logging.Formatter(
    '%(asctime)-15s [%(funcName)25s:%(lineno)-5s] %(levelname)-8s %(message)s'
)

# File handler for logging
fh = logging.FileHandler('report_pipeline.log', mode='a')
fh.setLevel(logging.DEBUG)
fh.setFormatter(formatter)
if not any(isinstance(handler, logging.FileHandler) for handler in log.handlers):
    log.addHandler(fh)

root_log = logging.getLogger()
root_log.setLevel(logging.DEBUG)
if not any(isinstance(handler, logging.FileHandler) for handler in root_log.handlers):
    root_log.addHandler(fh)


# ****************************************************************************************
# Functions
# ****************************************************************************************


async def run_once(config: PipelineConfig, use_sample_data: bool = False) -> PipelineSummary:
    reports, articles = load_snapshot(config.snapshot_path)
    if use_sample_data:
        news_provider = SampleNewsProvider()
        log.debug('Using sample news provider.')
    else:
        news_provider = RssNewsProvider(config.feeds)
    services = build_decision_services(model=config.model)
    pipeline = build_pipeline(
        config,
        news_provider=news_provider,
        ingestion_service=services.ingestion,
        deduplication_service=services.deduplication,
        classification_service=services.classification,
        composition_service=services.composition,
        reports=reports,
        articles=articles,
    )
    try:
        summary = await pipeline.run(config.locales)
    finally:
        save_snapshot(config.snapshot_path, reports, articles)
    for name, failure in summary.locale_failures.items():
        log.warning('Locale task %s failed: %s', name, failure)
    return summary


async def run_forever(config: PipelineConfig, interval_hours: float, use_sample_data: bool = False) -> None:
    # Runs are awaited back to back, so two runs never overlap.
    while True:
        try:
            summary = await run_once(config, use_sample_data=use_sample_data)
            log.info(
                'Run complete: %d report(s), %d article(s).',
                len(summary.new_reports),
                len(summary.new_articles),
            )
        except Exception:  # noqa: BLE001
            log.exception('Pipeline run failed; the next scheduled run will retry.')
        log.info('Sleeping %.1f hour(s) until the next run.', interval_hours)
        await asyncio.sleep(interval_hours * 3600)


# ****************************************************************************************
# Handle the arguments
# ****************************************************************************************


def handle_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Ingest, classify and compose news reports.')
    parser.add_argument('--config', default=DEFAULT_CONFIG_FILE, help='Path to pipeline config YAML.')
    parser.add_argument('--snapshot', default=None, help='Override the JSON snapshot path from config.')
    parser.add_argument(
        '--sample',
        action='store_true',
        help='Use built-in sample candidates and skip all feed requests.',
    )
    parser.add_argument('--loop', action='store_true', help='Keep running on a fixed interval.')
    parser.add_argument(
        '--interval-hours',
        type=float,
        default=PIPELINE_INTERVAL_HOURS,
        help='Hours between runs when --loop is set.',
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose output to stdout.')
    parser.add_argument('-q', '--quiet', action='store_true', help='Minimal stdout.')
    args = parser.parse_args()

    # Configure stdout logging based on arguments
    ch = logging.StreamHandler(sys.stdout)
    if args.verbose:
        ch.setLevel(logging.DEBUG)
    elif args.quiet:
        ch.setLevel(logging.ERROR)
    else:
        ch.setLevel(logging.INFO)
    ch.setFormatter(formatter)
    log.addHandler(ch)
    root_log.addHandler(ch)

    log.debug('Checking script requirements...')
    if not args.verbose and not args.quiet:
        log.debug('No output level specified. Defaulting to INFO.')

    log.info('++++++++++++++++++++++++++++++++++++++++++++++')
    log.info('+  %s', os.path.basename(sys.argv[0]))
    log.info('+  Python Version: %s', sys.version.split()[0])
    log.info('+  Today is: %s', date.today())
    log.info('++++++++++++++++++++++++++++++++++++++++++++++')
    return args


# ****************************************************************************************
# Main
# ****************************************************************************************


def main() -> None:
    args = handle_args()
    config = load_pipeline_config(args.config)
    if args.snapshot:
        config.snapshot_path = args.snapshot
    if args.loop:
        asyncio.run(run_forever(config, args.interval_hours, use_sample_data=args.sample))
        return
    summary = asyncio.run(run_once(config, use_sample_data=args.sample))
    log.info(
        'Pipeline produced %d report(s) and %d article(s); snapshot at %s',
        len(summary.new_reports),
        len(summary.new_articles),
        config.snapshot_path,
    )


if __name__ == '__main__':
    main()
