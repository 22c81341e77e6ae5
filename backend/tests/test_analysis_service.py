"""
EchoLog Backend — Analysis Service Tests
==========================================

What we test:
    ✅ Model replies are parsed with or without code fences
    ✅ Malformed replies raise MalformedLLMResponseError and store nothing
    ✅ A transcript is analysed at most once (saved or temporary id)
    ✅ Detail and history views
"""

import uuid

import pytest

from echolog.exceptions import (
    ExternalServiceError,
    MalformedLLMResponseError,
    NotFoundError,
    ValidationError,
)
from echolog.services.analysis_service import AnalysisService, build_prompt, parse_analysis_reply
from echolog.services.llm_base import GenerationSettings

from conftest import ANALYSIS_REPLY


@pytest.fixture
def service(llm):
    return AnalysisService(llm, GenerationSettings())


async def _saved_transcription(repo, user_id, text="We ship on Friday after testing."):
    return await repo.create_transcription(
        user_id=user_id, recording_id=None, full_text=text, language="it-IT", status="completed"
    )


class TestParseAnalysisReply:
    def test_fenced_json(self):
        payload = parse_analysis_reply(ANALYSIS_REPLY)

        assert payload.summary == "The team agreed to ship the release on Friday."
        assert payload.tone == "informal"
        assert payload.keywords == ["release", "friday", "testing"]
        assert payload.sections[0].title == "Release plan"

    def test_bare_json(self):
        assert parse_analysis_reply('{"summary": "Short."}').summary == "Short."

    def test_json_inside_prose(self):
        raw = 'Here is the analysis: {"summary": "Found it.", "tone": "formal"} Hope it helps.'
        assert parse_analysis_reply(raw).tone == "formal"

    @pytest.mark.parametrize(
        "raw",
        ["", "```json\n```", "I cannot analyse this text.", "[1, 2, 3]", '{"tone": "formal"}', "{broken"],
    )
    def test_malformed(self, raw):
        with pytest.raises(MalformedLLMResponseError):
            parse_analysis_reply(raw)

    def test_raw_reply_is_kept_out_of_the_client_message(self):
        with pytest.raises(MalformedLLMResponseError) as exc_info:
            parse_analysis_reply("secret internal reply")
        assert "secret internal reply" not in exc_info.value.message
        assert exc_info.value.raw_text == "secret internal reply"

    def test_prompt_embeds_text(self):
        prompt = build_prompt("Ciao a tutti")
        assert "---\nCiao a tutti\n---" in prompt
        assert '"sections"' in prompt


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_saved_transcription(self, service, repo, llm, user_id):
        transcription = await _saved_transcription(repo, user_id)

        result = await service.analyze(repo, user_id, transcription.full_text, str(transcription.id))

        assert result.existing is False
        assert result.transcription_id == str(transcription.id)
        assert result.keywords == ["release", "friday", "testing"]
        assert len(llm.prompts) == 1
        assert transcription.full_text in llm.prompts[0]

        stored = repo.analyses[result.id]
        assert stored.transcription_id == transcription.id
        assert stored.raw_text == transcription.full_text

    @pytest.mark.asyncio
    async def test_second_request_returns_existing_analysis(self, service, repo, llm, user_id):
        transcription = await _saved_transcription(repo, user_id)

        first = await service.analyze(repo, user_id, "text", str(transcription.id))
        second = await service.analyze(repo, user_id, "text", str(transcription.id))

        assert second.existing is True
        assert second.id == first.id
        assert len(llm.prompts) == 1
        assert len(repo.analyses) == 1

    @pytest.mark.asyncio
    async def test_temporary_id(self, service, repo, llm, user_id):
        first = await service.analyze(repo, user_id, "unsaved text", "tr-0123456789ab")
        second = await service.analyze(repo, user_id, "unsaved text", "tr-0123456789ab")

        assert first.transcription_id == "tr-0123456789ab"
        assert repo.analyses[first.id].transcription_ref == "tr-0123456789ab"
        assert repo.analyses[first.id].transcription_id is None
        assert second.existing is True
        assert len(llm.prompts) == 1

    @pytest.mark.asyncio
    async def test_missing_saved_transcription(self, service, repo, llm, user_id):
        with pytest.raises(NotFoundError):
            await service.analyze(repo, user_id, "text", str(uuid.uuid4()))
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_other_users_transcription_is_not_found(self, service, repo, user_id):
        transcription = await _saved_transcription(repo, user_id)
        with pytest.raises(NotFoundError):
            await service.analyze(repo, uuid.uuid4(), "text", str(transcription.id))

    @pytest.mark.parametrize("transcription_id", ["memo.wav", "42", ""])
    @pytest.mark.asyncio
    async def test_invalid_id(self, service, repo, user_id, transcription_id):
        with pytest.raises(ValidationError):
            await service.analyze(repo, user_id, "text", transcription_id)

    @pytest.mark.asyncio
    async def test_blank_text(self, service, repo, user_id):
        with pytest.raises(ValidationError):
            await service.analyze(repo, user_id, "  ", "tr-0123456789ab")

    @pytest.mark.asyncio
    async def test_malformed_reply_stores_nothing(self, service, repo, llm, user_id):
        llm.reply = "Sorry, I can't help with that."

        with pytest.raises(MalformedLLMResponseError):
            await service.analyze(repo, user_id, "text", "tr-0123456789ab")
        assert repo.analyses == {}

    @pytest.mark.asyncio
    async def test_model_failure_propagates(self, service, repo, llm, user_id):
        llm.error = ExternalServiceError("Gemini", "503 overloaded")

        with pytest.raises(ExternalServiceError):
            await service.analyze(repo, user_id, "text", "tr-0123456789ab")
        assert repo.analyses == {}


class TestDetailAndHistory:
    @pytest.mark.asyncio
    async def test_detail_uses_saved_transcript_text(self, service, repo, user_id):
        transcription = await _saved_transcription(repo, user_id, text="The full saved transcript.")
        created = await service.analyze(repo, user_id, "The full saved transcript.", str(transcription.id))

        detail = await service.get(repo, user_id, created.id)

        assert detail.transcription_text == "The full saved transcript."
        assert detail.summary == created.summary

    @pytest.mark.asyncio
    async def test_detail_falls_back_to_analysed_text(self, service, repo, user_id):
        created = await service.analyze(repo, user_id, "Only the analysed text.", "tr-0123456789ab")

        detail = await service.get(repo, user_id, created.id)

        assert detail.transcription_text == "Only the analysed text."

    @pytest.mark.asyncio
    async def test_detail_not_found(self, service, repo, user_id):
        with pytest.raises(NotFoundError):
            await service.get(repo, user_id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_history_newest_first_with_previews(self, service, repo, user_id):
        long_text = "word " * 40
        for i in range(3):
            await service.analyze(repo, user_id, long_text if i == 2 else f"text {i}", f"tr-00000000000{i}")

        page = await service.history(repo, user_id, limit=2, skip=0)

        assert page.total == 3
        assert len(page.analyses) == 2
        assert page.analyses[0].transcription_id == "tr-000000000002"
        assert page.analyses[0].text_preview == long_text[:100] + "..."
        assert page.analyses[1].text_preview == "text 1"

        rest = await service.history(repo, user_id, limit=2, skip=2)
        assert [a.transcription_id for a in rest.analyses] == ["tr-000000000000"]
