"""
EchoLog Backend — Transcript Analysis Service
===============================================

What:  Asks the language model for a structured reading of a transcript
       (summary, tone, keywords, thematic sections) and stores the result.
How:   One prompt, one model call, no retries. The reply must be a JSON
       document; markdown code fences around it are tolerated. Anything
       else raises MalformedLLMResponseError instead of crashing.
Who:   Called by the analysis routes.

Each transcript is analysed at most once per user: a second request for the
same transcription (saved id or temporary "tr-..." id) returns the stored
analysis without calling the model.
"""

import json
import logging
import re
import uuid
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from echolog.config import settings
from echolog.exceptions import MalformedLLMResponseError, NotFoundError, ValidationError
from echolog.models.analysis import Analysis
from echolog.schemas.analysis import (
    AnalysisDetailResponse,
    AnalysisHistoryItem,
    AnalysisHistoryResponse,
    AnalysisPayload,
    AnalysisResponse,
    AnalysisSection,
)
from echolog.services.identifiers import IdentifierKind, classify_identifier
from echolog.services.llm_base import GenerationSettings, LLMService
from echolog.services.repository import EchoLogRepository

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100

ANALYSIS_PROMPT = """You are an assistant specialised in analysing texts transcribed from audio.

Analyse the transcribed text below and:
1. Write a concise summary (at most 3 paragraphs) of the main points
2. Organise the content into thematic sections (2 to 5 sections)
3. Highlight up to 10 important keywords or concepts
4. Identify the overall tone (formal, informal, technical, popular, etc.)

Write every value in the same language as the text.

Text to analyse:
---
{text}
---

Reply in JSON following exactly this structure:
{{
  "summary": "Summary of the main points",
  "tone": "Overall tone",
  "keywords": ["keyword1", "keyword2", "concept1"],
  "sections": [
    {{
      "title": "Section title",
      "content": "Section content with its main points",
      "keywords": ["keyword for this section"]
    }}
  ]
}}

Do NOT include explanations or introductions. Reply ONLY with well-formed JSON."""

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def build_prompt(text: str) -> str:
    return ANALYSIS_PROMPT.format(text=text)


def parse_analysis_reply(raw: str) -> AnalysisPayload:
    """
    Parses the model's reply into an AnalysisPayload.

    Code fences are removed first. If the remainder still is not JSON, the
    outermost {...} span is tried before giving up.
    """
    cleaned = _FENCE.sub("", raw or "").strip()
    if not cleaned:
        raise MalformedLLMResponseError("The model returned an empty reply.", raw_text=raw or "")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise MalformedLLMResponseError("The reply is not valid JSON.", raw_text=raw)
        try:
            data = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedLLMResponseError("The reply is not valid JSON.", raw_text=raw) from e

    if not isinstance(data, dict):
        raise MalformedLLMResponseError("The reply is not a JSON object.", raw_text=raw)

    try:
        return AnalysisPayload.model_validate(data)
    except PydanticValidationError as e:
        raise MalformedLLMResponseError(
            f"The reply does not match the analysis structure: {e.error_count()} error(s).",
            raw_text=raw,
        ) from e


def _to_response(analysis: Analysis, existing: bool = False) -> AnalysisResponse:
    return AnalysisResponse(
        id=analysis.id,
        transcription_id=_transcription_key(analysis),
        summary=analysis.summary,
        tone=analysis.tone,
        keywords=list(analysis.keywords or []),
        sections=[AnalysisSection.model_validate(s) for s in (analysis.sections or [])],
        created_at=analysis.created_at,
        existing=existing,
    )


def _transcription_key(analysis: Analysis) -> Optional[str]:
    if analysis.transcription_id is not None:
        return str(analysis.transcription_id)
    return analysis.transcription_ref


def _preview(text: str) -> str:
    if len(text) <= PREVIEW_LENGTH:
        return text
    return text[:PREVIEW_LENGTH] + "..."


class AnalysisService:
    """Analysis requests, detail and history."""

    def __init__(self, llm: LLMService, generation: Optional[GenerationSettings] = None):
        self.llm = llm
        self.generation = generation or GenerationSettings(
            temperature=settings.gemini_temperature,
            top_p=settings.gemini_top_p,
            top_k=settings.gemini_top_k,
            max_output_tokens=settings.gemini_max_output_tokens,
        )

    async def analyze(
        self,
        repo: EchoLogRepository,
        user_id: uuid.UUID,
        text: str,
        transcription_id: str,
    ) -> AnalysisResponse:
        if not text or not text.strip():
            raise ValidationError(message="Text to analyse must not be empty.", field="text")

        kind = classify_identifier(transcription_id)
        saved_id: Optional[uuid.UUID] = None
        temporary_ref: Optional[str] = None

        if kind is IdentifierKind.RECORD_ID:
            transcription = await repo.get_transcription(user_id, uuid.UUID(transcription_id))
            if transcription is None:
                raise NotFoundError(resource="Transcription", resource_id=transcription_id)
            saved_id = transcription.id
        elif kind is IdentifierKind.TEMPORARY_ID:
            temporary_ref = transcription_id
        else:
            raise ValidationError(
                message=f"'{transcription_id}' is not a valid transcription id.",
                field="transcription_id",
            )

        existing = await repo.find_analysis(
            user_id, transcription_id=saved_id, transcription_ref=temporary_ref
        )
        if existing is not None:
            logger.info("Returning existing analysis %s for %s", existing.id, transcription_id)
            return _to_response(existing, existing=True)

        logger.info("Analysing %d chars for transcription %s", len(text), transcription_id)
        raw = await self.llm.generate(build_prompt(text), self.generation)
        payload = parse_analysis_reply(raw)

        analysis = await repo.create_analysis(
            user_id=user_id,
            transcription_id=saved_id,
            transcription_ref=temporary_ref,
            summary=payload.summary,
            tone=payload.tone,
            keywords=payload.keywords,
            sections=[section.model_dump() for section in payload.sections],
            raw_text=text,
        )
        logger.info("Analysis %s saved", analysis.id)
        return _to_response(analysis)

    async def get(
        self, repo: EchoLogRepository, user_id: uuid.UUID, analysis_id: uuid.UUID
    ) -> AnalysisDetailResponse:
        analysis = await repo.get_analysis(user_id, analysis_id)
        if analysis is None:
            raise NotFoundError(resource="Analysis", resource_id=str(analysis_id))

        transcription_text = analysis.raw_text
        if analysis.transcription_id is not None:
            transcription = await repo.get_transcription(user_id, analysis.transcription_id)
            if transcription is not None:
                transcription_text = transcription.full_text

        base = _to_response(analysis)
        return AnalysisDetailResponse(**base.model_dump(), transcription_text=transcription_text)

    async def history(
        self, repo: EchoLogRepository, user_id: uuid.UUID, limit: int, skip: int
    ) -> AnalysisHistoryResponse:
        analyses, total = await repo.list_analyses(user_id, limit, skip)
        items = [
            AnalysisHistoryItem(
                id=a.id,
                transcription_id=_transcription_key(a),
                summary=a.summary,
                keywords=list(a.keywords or []),
                text_preview=_preview(a.raw_text or ""),
                created_at=a.created_at,
            )
            for a in analyses
        ]
        return AnalysisHistoryResponse(analyses=items, total=total, limit=limit, skip=skip)
