##########################################################################################
#
# Script name: agents.py
#
# Description: Decision services backed by OpenAI, with offline fallbacks.
#
##########################################################################################

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

from fuzzywuzzy import fuzz
from openai import AsyncOpenAI

from .config import DEFAULT_MODEL
from .models import (
    ClassificationDecision,
    CompositionDecision,
    DeduplicationDecision,
    FrameDraft,
    IngestionDecision,
    Locale,
    RawCandidate,
    Report,
    ReportAngle,
    ReportTraits,
    Tier,
    ValidationError,
)
from .utils import safe_sentence


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)

SYSTEM_PROMPT = 'You are a careful news desk editor. Return strict JSON only, no markdown.'

INGESTION_INSTRUCTIONS = (
    'Several outlets published the source items below about what may be one event. '
    'If they do not describe one concrete event, return {"report": null}. Otherwise return '
    '{"report": {"core": "...", "background": "...", "categories": ["..."], '
    '"angles": [{"text": "...", "discourse": "MAINSTREAM|ALTERNATIVE|UNDERREPORTED|DUBIOUS", '
    '"stance": "supportive|critical|neutral|mixed|concerned|optimistic|skeptical"}]}}. '
    'Write in the target language. The first category is the primary one.'
)

DEDUPLICATION_INSTRUCTIONS = (
    'Decide whether the new report covers the same event as one of the existing reports. '
    'Return {"duplicate_of": "<existing id>"} or {"duplicate_of": null}.'
)

CLASSIFICATION_INSTRUCTIONS = (
    'Assign an editorial tier to the report: GENERAL for broad public interest, NICHE for a '
    'specialist audience, OFF_TOPIC for anything not worth publishing. Return '
    '{"tier": "...", "traits": {"smart": bool, "uplifting": bool}, "reason": "..."}.'
)

COMPOSITION_INSTRUCTIONS = (
    'Write a neutral article using only the corroborated core facts, then one frame per angle, '
    'in the given order, expanding that angle without repeating the core facts. Return '
    '{"headline": "...", "body": "...", "frames": [{"headline": "...", "body": "..."}]}.'
)

FALLBACK_GENERAL_MIN_SOURCES = 10
FALLBACK_NICHE_MIN_SOURCES = 4
FALLBACK_DUPLICATE_THRESHOLD = 90


# ****************************************************************************************
# Functions
# ****************************************************************************************


def _report_payload(report: Report) -> dict[str, Any]:
    return {
        'id': report.id,
        'dateline': report.dateline.isoformat(),
        'core': report.core,
        'background': report.background,
        'categories': report.categories,
        'angles': [angle.text for angle in report.angles],
        'sources': report.evidence_weight,
    }


def parse_ingestion(payload: dict) -> IngestionDecision | None:
    body = payload.get('report')
    if not body:
        return None
    if not isinstance(body, dict):
        raise ValidationError('ingestion result "report" must be an object')
    angles = [
        ReportAngle(text=raw.get('text', ''), discourse=raw.get('discourse'), stance=raw.get('stance'))
        for raw in body.get('angles') or []
        if isinstance(raw, dict)
    ]
    return IngestionDecision(
        core=str(body.get('core', '')),
        background=str(body.get('background', '')),
        categories=[str(c) for c in body.get('categories') or []],
        angles=angles,
    )


def parse_deduplication(payload: dict, existing_ids: set[str]) -> DeduplicationDecision | None:
    if 'duplicate_of' not in payload:
        return None
    duplicate_of = payload.get('duplicate_of')
    if not duplicate_of:
        return DeduplicationDecision(duplicate_of=None)
    if duplicate_of not in existing_ids:
        log.warning('Deduplication named unknown report %s; ignoring decision.', duplicate_of)
        return None
    return DeduplicationDecision(duplicate_of=str(duplicate_of))


def parse_classification(payload: dict) -> ClassificationDecision | None:
    tier = payload.get('tier')
    if not tier:
        return None
    try:
        parsed_tier = Tier(str(tier).strip().upper())
    except ValueError as exc:
        raise ValidationError(f'Invalid tier: {tier!r}') from exc
    traits = payload.get('traits') or {}
    return ClassificationDecision(
        tier=parsed_tier,
        traits=ReportTraits(smart=bool(traits.get('smart')), uplifting=bool(traits.get('uplifting'))),
        reason=str(payload.get('reason', '')),
    )


def parse_composition(payload: dict) -> CompositionDecision | None:
    if not payload.get('headline') or not payload.get('body'):
        return None
    frames = [
        FrameDraft(headline=str(raw.get('headline', '')), body=str(raw.get('body', '')))
        for raw in payload.get('frames') or []
        if isinstance(raw, dict)
    ]
    return CompositionDecision(headline=str(payload['headline']), body=str(payload['body']), frames=frames)


# ****************************************************************************************
# OpenAI-backed services
# ****************************************************************************************


class _OpenAIDecisionService:
    def __init__(self, client: AsyncOpenAI, model: str = DEFAULT_MODEL) -> None:
        self._client = client
        self._model = model

    async def _ask(self, instructions: str, data: dict[str, Any]) -> dict | None:
        user_prompt = f'{instructions}\nInput JSON:\n{json.dumps(data, ensure_ascii=True)}'
        response = await self._client.chat.completions.create(
            model=self._model,
            response_format={'type': 'json_object'},
            messages=[
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {'role': 'user', 'content': user_prompt},
            ],
        )
        content = response.choices[0].message.content
        if not content:
            return None
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            log.warning('%s returned non-JSON content: %s', type(self).__name__, exc)
            return None
        return parsed if isinstance(parsed, dict) else None


class OpenAIIngestionService(_OpenAIDecisionService):
    async def decide(self, candidate: RawCandidate, locale: Locale) -> IngestionDecision | None:
        data = {
            'language': locale.language,
            'country': locale.country,
            'published_at': candidate.published_at.isoformat() if candidate.published_at else None,
            'sources': [
                {'headline': item.headline, 'outlet': item.domain or None, 'url': item.url or None}
                for item in candidate.items
            ],
        }
        payload = await self._ask(INGESTION_INSTRUCTIONS, data)
        return parse_ingestion(payload) if payload else None


class OpenAIDeduplicationService(_OpenAIDecisionService):
    async def decide(self, report: Report, existing: list[Report]) -> DeduplicationDecision | None:
        if not existing:
            return DeduplicationDecision(duplicate_of=None)
        data = {
            'new_report': _report_payload(report),
            'existing_reports': [{'id': other.id, 'core': other.core} for other in existing],
        }
        payload = await self._ask(DEDUPLICATION_INSTRUCTIONS, data)
        return parse_deduplication(payload, {other.id for other in existing}) if payload else None


class OpenAIClassificationService(_OpenAIDecisionService):
    async def decide(self, report: Report) -> ClassificationDecision | None:
        payload = await self._ask(CLASSIFICATION_INSTRUCTIONS, _report_payload(report))
        return parse_classification(payload) if payload else None


class OpenAICompositionService(_OpenAIDecisionService):
    async def decide(self, report: Report, locale: Locale) -> CompositionDecision | None:
        data = {'language': locale.language, 'country': locale.country, 'report': _report_payload(report)}
        payload = await self._ask(COMPOSITION_INSTRUCTIONS, data)
        return parse_composition(payload) if payload else None


# ****************************************************************************************
# Offline fallbacks
# ****************************************************************************************


class FallbackIngestionService:
    async def decide(self, candidate: RawCandidate, locale: Locale) -> IngestionDecision | None:
        headlines = list(dict.fromkeys(item.headline for item in candidate.items if item.headline))
        if not headlines:
            return None
        core = safe_sentence(f'{headlines[0]}. Reported by {candidate.evidence_weight} sources.', 400)
        return IngestionDecision(
            core=core,
            background='',
            categories=['GENERAL'],
            angles=[ReportAngle(text=safe_sentence(' / '.join(headlines), 800), stance='neutral')],
        )


class FallbackDeduplicationService:
    async def decide(self, report: Report, existing: list[Report]) -> DeduplicationDecision | None:
        for other in existing:
            if other.id != report.id and fuzz.token_sort_ratio(report.core, other.core) >= FALLBACK_DUPLICATE_THRESHOLD:
                return DeduplicationDecision(duplicate_of=other.id)
        return DeduplicationDecision(duplicate_of=None)


class FallbackClassificationService:
    async def decide(self, report: Report) -> ClassificationDecision | None:
        weight = report.evidence_weight
        if weight >= FALLBACK_GENERAL_MIN_SOURCES:
            tier = Tier.GENERAL
        elif weight >= FALLBACK_NICHE_MIN_SOURCES:
            tier = Tier.NICHE
        else:
            tier = Tier.OFF_TOPIC
        return ClassificationDecision(tier=tier, reason=f'{weight} corroborating source(s)')


class FallbackCompositionService:
    async def decide(self, report: Report, locale: Locale) -> CompositionDecision | None:
        headline = safe_sentence(report.core.split('. ')[0], 120)
        body = '\n\n'.join(part for part in (report.core, report.background) if part)
        frames = [
            FrameDraft(headline=safe_sentence(angle.text, 120), body=angle.text)
            for angle in report.angles
        ]
        return CompositionDecision(headline=headline, body=body, frames=frames)


@dataclass
class DecisionServices:
    ingestion: Any
    deduplication: Any
    classification: Any
    composition: Any


def build_decision_services(model: str = DEFAULT_MODEL, api_key: str | None = None) -> DecisionServices:
    api_key = api_key or os.getenv('OPENAI_API_KEY')
    if not api_key:
        log.warning('OPENAI_API_KEY is not set; using offline fallback decision services.')
        return DecisionServices(
            ingestion=FallbackIngestionService(),
            deduplication=FallbackDeduplicationService(),
            classification=FallbackClassificationService(),
            composition=FallbackCompositionService(),
        )
    client = AsyncOpenAI(api_key=api_key)
    log.info('Using OpenAI decision services with model %s.', model)
    return DecisionServices(
        ingestion=OpenAIIngestionService(client, model),
        deduplication=OpenAIDeduplicationService(client, model),
        classification=OpenAIClassificationService(client, model),
        composition=OpenAICompositionService(client, model),
    )
