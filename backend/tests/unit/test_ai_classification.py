"""
Unit tests for the AI triage service.

Tests the model-output handling including:
- Parsing classification and escalation JSON
- Falling back when OpenAI is unconfigured or misbehaves
- Summary generation fallbacks
"""

import json

import pytest

from casewatch.models.case import Case, CasePriority, EscalationLevel, IssueCategory
from casewatch.services import ai_classification as ai
from casewatch.testing.factories import DEFAULT_DESCRIPTION


def _classification_json(**overrides) -> str:
    data = {
        "issue_category": IssueCategory.corruption_police.value,
        "escalation_level": EscalationLevel.urgent.value,
        "confidence": 0.92,
        "suggested_actions": ["Contact a lawyer", "Preserve evidence"],
        "urgency_score": 9,
    }
    data.update(overrides)
    return json.dumps(data)


def _escalation_json(**overrides) -> str:
    data = {
        "should_escalate": True,
        "confidence": 0.8,
        "reasons": ["Ongoing harm"],
        "suggested_priority": "Critical",
        "urgency_score": 9,
        "risk_factors": ["Retaliation"],
        "recommendation": "Escalate immediately",
    }
    data.update(overrides)
    return json.dumps(data)


def _case() -> Case:
    return Case(
        case_ref="999P-1700000000000-ABCD",
        title="Police refusing to investigate",
        client_name="Jane Reporter",
        description=DEFAULT_DESCRIPTION,
        issue_category=IssueCategory.corruption_police,
        escalation_level=EscalationLevel.priority,
    )


class TestStripCodeFences:
    def test_json_fence(self):
        assert ai.strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_fence(self):
        assert ai.strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'

    def test_no_fence(self):
        assert ai.strip_code_fences('  {"a": 1} ') == '{"a": 1}'


class TestParseClassification:
    def test_valid_response(self):
        result = ai.parse_classification(_classification_json())
        assert result.issue_category == IssueCategory.corruption_police
        assert result.escalation_level == EscalationLevel.urgent
        assert result.confidence == 0.92
        assert result.fallback is False

    def test_fenced_response(self):
        result = ai.parse_classification(f"```json\n{_classification_json()}\n```")
        assert result.urgency_score == 9

    def test_values_are_clamped(self):
        result = ai.parse_classification(_classification_json(confidence=1.7, urgency_score=42))
        assert result.confidence == 1.0
        assert result.urgency_score == 10

    def test_missing_actions_default_to_manual_review(self):
        result = ai.parse_classification(_classification_json(suggested_actions="call someone"))
        assert result.suggested_actions == ["Manual review required"]

    def test_missing_urgency_defaults_to_five(self):
        result = ai.parse_classification(_classification_json(urgency_score=None))
        assert result.urgency_score == 5

    @pytest.mark.parametrize(
        "raw",
        [
            "not json at all",
            "[1, 2, 3]",
            _classification_json(issue_category="Parking"),
            _classification_json(escalation_level="Whenever"),
            _classification_json(confidence="high"),
            _classification_json(confidence=True),
        ],
    )
    def test_invalid_responses_raise(self, raw):
        with pytest.raises(ai.AIClassificationError):
            ai.parse_classification(raw)


class TestParseEscalation:
    def test_valid_response(self):
        analysis = ai.parse_escalation(_escalation_json())
        assert analysis.should_escalate is True
        assert analysis.suggested_priority == CasePriority.critical
        assert analysis.risk_factors == ["Retaliation"]

    def test_risk_factors_optional(self):
        analysis = ai.parse_escalation(_escalation_json(risk_factors=None))
        assert analysis.risk_factors == []

    @pytest.mark.parametrize(
        "overrides",
        [
            {"should_escalate": "yes"},
            {"confidence": None},
            {"reasons": "because"},
            {"suggested_priority": "Low"},
            {"urgency_score": "9"},
        ],
    )
    def test_invalid_structure_raises(self, overrides):
        with pytest.raises(ai.AIClassificationError):
            ai.parse_escalation(_escalation_json(**overrides))


class TestClassifyText:
    async def test_falls_back_without_api_key(self):
        result = await ai.classify_text(DEFAULT_DESCRIPTION)
        assert result.fallback is True
        assert result.issue_category == IssueCategory.other
        assert result.escalation_level == EscalationLevel.priority
        assert result.confidence == 0.1
        assert result.urgency_score == 6
        assert result.processing_time_ms is not None

    async def test_uses_model_answer(self, monkeypatch):
        async def fake_completion(messages, **kwargs):
            assert DEFAULT_DESCRIPTION in messages[0]["content"]
            return _classification_json()

        monkeypatch.setattr(ai, "_chat_completion", fake_completion)
        result = await ai.classify_text(DEFAULT_DESCRIPTION)
        assert result.fallback is False
        assert result.issue_category == IssueCategory.corruption_police
        assert result.model_used

    async def test_falls_back_on_garbage(self, monkeypatch):
        async def fake_completion(messages, **kwargs):
            return "I'm sorry, I can't help with that."

        monkeypatch.setattr(ai, "_chat_completion", fake_completion)
        result = await ai.classify_text(DEFAULT_DESCRIPTION)
        assert result.fallback is True


class TestAnalyzeEscalation:
    async def test_falls_back_without_api_key(self):
        analysis = await ai.analyze_escalation(_case(), "Witness threatened")
        assert analysis.should_escalate is False
        assert analysis.confidence == 0.1
        assert analysis.suggested_priority == CasePriority.normal

    async def test_prompt_includes_reason(self, monkeypatch):
        seen = {}

        async def fake_completion(messages, **kwargs):
            seen["prompt"] = messages[-1]["content"]
            return _escalation_json()

        monkeypatch.setattr(ai, "_chat_completion", fake_completion)
        analysis = await ai.analyze_escalation(_case(), "Witness threatened")
        assert analysis.should_escalate is True
        assert "Witness threatened" in seen["prompt"]


class TestSummary:
    async def test_fallback_summary(self):
        case = _case()
        summary = await ai.generate_case_summary(case)
        assert summary == ai.fallback_summary(case)
        assert case.case_ref in summary

    async def test_model_summary_is_stripped(self, monkeypatch):
        async def fake_completion(messages, **kwargs):
            return "  A concise summary.  \n"

        monkeypatch.setattr(ai, "_chat_completion", fake_completion)
        assert await ai.generate_case_summary(_case()) == "A concise summary."


class TestPreview:
    def test_short_text_unchanged(self):
        assert ai._preview("short") == "short"

    def test_exact_length_unchanged(self):
        text = "x" * ai.HISTORY_PREVIEW_LENGTH
        assert ai._preview(text) == text

    def test_long_text_truncated(self):
        preview = ai._preview("x" * 500)
        assert len(preview) == ai.HISTORY_PREVIEW_LENGTH + 3
        assert preview.endswith("...")


def test_new_api_models_detected():
    assert ai._is_openai_new_api_model("o1-mini")
    assert ai._is_openai_new_api_model("gpt-5")
    assert not ai._is_openai_new_api_model("gpt-4o-mini")
