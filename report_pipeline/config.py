##########################################################################################
#
# Script name: config.py
#
# Description: Static pipeline constants and YAML-backed run configuration.
#
##########################################################################################

import logging
import os
from dataclasses import dataclass, field

import yaml

from .models import Locale, ValidationError


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)

DAILY_REPORT_TARGET = 14

DEDUPLICATION_BATCH_SIZE = 50
DEDUPLICATION_LOOKBACK_DAYS = 3
CLASSIFICATION_BATCH_SIZE = 50
COMPOSITION_BATCH_SIZE = 20

PIPELINE_INTERVAL_HOURS = 2

DEFAULT_CONFIG_FILE = 'config/pipeline.yaml'
DEFAULT_SNAPSHOT_FILE = 'data/snapshot.json'
DEFAULT_MODEL = 'gpt-5-mini'


@dataclass(frozen=True)
class FeedSource:
    locale: Locale
    url: str
    name: str = ''
    max_items: int = 40


@dataclass
class PipelineConfig:
    locales: list[Locale]
    daily_target: int = DAILY_REPORT_TARGET
    feeds: list[FeedSource] = field(default_factory=list)
    model: str = DEFAULT_MODEL
    snapshot_path: str = DEFAULT_SNAPSHOT_FILE
    timezone: str = 'UTC'
    deduplication_batch_size: int = DEDUPLICATION_BATCH_SIZE
    classification_batch_size: int = CLASSIFICATION_BATCH_SIZE
    composition_batch_size: int = COMPOSITION_BATCH_SIZE


# ****************************************************************************************
# Functions
# ****************************************************************************************


def _parse_locale(raw: dict) -> Locale:
    if not isinstance(raw, dict):
        raise ValueError(f'locale entry must be a mapping, got {raw!r}')
    try:
        return Locale(language=str(raw.get('language', '')), country=str(raw.get('country', '')))
    except ValidationError as exc:
        raise ValueError(f'invalid locale entry {raw!r}: {exc}') from exc


def _positive_int(payload: dict, key: str, default: int) -> int:
    value = payload.get(key, default)
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f'config.{key} must be an integer') from exc
    if number <= 0:
        raise ValueError(f'config.{key} must be positive')
    return number


def parse_pipeline_config(payload: dict) -> PipelineConfig:
    if not isinstance(payload, dict):
        raise ValueError('pipeline config must be a mapping')

    raw_locales = payload.get('locales', [])
    if not isinstance(raw_locales, list) or not raw_locales:
        raise ValueError('config.locales must be a non-empty list')
    locales = [_parse_locale(raw) for raw in raw_locales]

    raw_feeds = payload.get('feeds', []) or []
    if not isinstance(raw_feeds, list):
        raise ValueError('config.feeds must be a list')
    feeds: list[FeedSource] = []
    for raw in raw_feeds:
        url = (raw.get('url') or '').strip() if isinstance(raw, dict) else ''
        if not url:
            log.warning('Skipping feed entry without url: %s', raw)
            continue
        locale = _parse_locale(raw)
        if locale not in locales:
            log.warning('Feed %s targets unconfigured locale %s.', url, locale)
        feeds.append(
            FeedSource(
                locale=locale,
                url=url,
                name=raw.get('name') or url,
                max_items=_positive_int(raw, 'max_items', 40),
            )
        )

    return PipelineConfig(
        locales=locales,
        daily_target=_positive_int(payload, 'daily_target', DAILY_REPORT_TARGET),
        feeds=feeds,
        model=os.getenv('OPENAI_MODEL') or payload.get('model') or DEFAULT_MODEL,
        snapshot_path=payload.get('snapshot') or DEFAULT_SNAPSHOT_FILE,
        timezone=os.getenv('PIPELINE_TIMEZONE') or payload.get('timezone') or 'UTC',
        deduplication_batch_size=_positive_int(payload, 'deduplication_batch_size', DEDUPLICATION_BATCH_SIZE),
        classification_batch_size=_positive_int(payload, 'classification_batch_size', CLASSIFICATION_BATCH_SIZE),
        composition_batch_size=_positive_int(payload, 'composition_batch_size', COMPOSITION_BATCH_SIZE),
    )


def load_pipeline_config(path: str) -> PipelineConfig:
    with open(path, 'r', encoding='utf-8') as handle:
        payload = yaml.safe_load(handle) or {}
    config = parse_pipeline_config(payload)
    log.info(
        'Loaded pipeline config from %s: %d locale(s), %d feed(s), daily target %d.',
        path,
        len(config.locales),
        len(config.feeds),
        config.daily_target,
    )
    return config
