"""AI triage for case descriptions.

Classification and escalation analysis go through the OpenAI chat completions
API. Any failure (missing key, HTTP error, malformed answer) degrades to a
conservative fallback instead of failing the request.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
import logging
import re
import time
from typing import Any

import httpx
from sqlalchemy import case as sa_case, func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.config import settings
from casewatch.db.query import paginated_query
from casewatch.models.case import AIClassification, Case, CasePriority, EscalationLevel, IssueCategory
from casewatch.models.user import User
from casewatch.schemas.ai import ClassificationResult, EscalationAnalysis

logger = logging.getLogger(__name__)

HISTORY_PREVIEW_LENGTH = 200
TIMEFRAMES = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}
ESCALATION_PRIORITIES = {CasePriority.normal.value, CasePriority.high.value, CasePriority.critical.value}

FALLBACK_ACTIONS = [
    "Manual review required due to AI classification failure",
    "Contact support team immediately",
    "Document all evidence carefully",
]

_CODE_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CODE_FENCE_END = re.compile(r"\s*```$")


class AIClassificationError(Exception):
    """Raised when the model cannot be reached or its answer is unusable."""


def _is_openai_new_api_model(model: str) -> bool:
    """Reasoning models and GPT-5+ take max_completion_tokens and no temperature."""
    return model.lower().startswith(("o1", "o3", "gpt-5"))


async def _chat_completion(
    messages: list[dict[str, str]],
    *,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> str:
    if not settings.OPENAI_API_KEY:
        raise AIClassificationError("No API key configured for OpenAI")

    model = settings.OPENAI_MODEL
    payload: dict = {"model": model, "messages": messages}
    if _is_openai_new_api_model(model):
        payload["max_completion_tokens"] = max_tokens or settings.OPENAI_MAX_TOKENS
    else:
        payload["temperature"] = settings.OPENAI_TEMPERATURE if temperature is None else temperature
        payload["max_tokens"] = max_tokens or settings.OPENAI_MAX_TOKENS

    try:
        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.post(
                f"{settings.OPENAI_BASE_URL.rstrip('/')}/chat/completions",
                headers={
                    "Authorization": f"Bearer {settings.OPENAI_API_KEY}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
    except httpx.TimeoutException as exc:
        raise AIClassificationError("OpenAI request timed out") from exc
    except httpx.HTTPError as exc:
        raise AIClassificationError(f"OpenAI request failed: {exc}") from exc

    if response.status_code == 401:
        raise AIClassificationError("Invalid OpenAI API key")
    if response.status_code != 200:
        try:
            error_msg = response.json().get("error", {}).get("message", f"Status {response.status_code}")
        except ValueError:
            error_msg = f"Status {response.status_code}"
        raise AIClassificationError(f"OpenAI API error: {error_msg}")

    try:
        content = response.json()["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise AIClassificationError("Unexpected OpenAI response shape") from exc
    if not content:
        raise AIClassificationError("No response from OpenAI")
    return content


def strip_code_fences(raw: str) -> str:
    text = raw.strip()
    text = _CODE_FENCE_START.sub("", text)
    return _CODE_FENCE_END.sub("", text).strip()


def parse_json_response(raw: str) -> dict[str, Any]:
    try:
        data = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as exc:
        raise AIClassificationError("Model response is not valid JSON") from exc
    if not isinstance(data, dict):
        raise AIClassificationError("Model response is not a JSON object")
    return data


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def _clamp_urgency(value: Any, default: int) -> int:
    if not _is_number(value):
        return default
    return max(1, min(10, int(value)))


def _build_classification_prompt(text: str, context: Any = None) -> str:
    categories = "\n".join(f"   - {category.value}" for category in IssueCategory)
    context_part = f"\nAdditional Context: {json.dumps(context, default=str)}" if context else ""
    return f"""You are an AI legal triage assistant for a crime reporting platform that combats systematic corruption.

Analyze the following case description and classify it.

1. Issue Category, one of:
{categories}

2. Escalation Level:
   - Basic: standard processing, no immediate danger
   - Priority: requires attention within 24-48 hours, potential ongoing harm
   - Urgent: immediate action required, life-threatening, active persecution

3. Confidence: 0.0 to 1.0

4. Suggested Actions: 2-4 immediate actions

5. Urgency Score: 1-10 (10 = life-threatening)

Be especially sensitive to police refusing to investigate, official cover-ups,
judicial bias, retaliation against whistleblowers and imprisonment without trial.

Return ONLY a JSON object in this exact format:
{{
  "issue_category": "...",
  "escalation_level": "...",
  "confidence": 0.0,
  "suggested_actions": ["...", "..."],
  "urgency_score": 0
}}

Case Description:
\"\"\"{text}\"\"\"
{context_part}"""


def fallback_classification() -> ClassificationResult:
    return ClassificationResult(
        issue_category=IssueCategory.other,
        escalation_level=EscalationLevel.priority,
        confidence=0.1,
        suggested_actions=list(FALLBACK_ACTIONS),
        urgency_score=6,
        fallback=True,
    )


def parse_classification(raw: str) -> ClassificationResult:
    data = parse_json_response(raw)
    try:
        category = IssueCategory(data.get("issue_category"))
        level = EscalationLevel(data.get("escalation_level"))
    except ValueError as exc:
        raise AIClassificationError(f"Invalid classification values: {exc}") from exc
    if not _is_number(data.get("confidence")):
        raise AIClassificationError("Classification confidence is not numeric")

    actions = data.get("suggested_actions")
    if not isinstance(actions, list):
        actions = ["Manual review required"]

    return ClassificationResult(
        issue_category=category,
        escalation_level=level,
        confidence=_clamp_confidence(data["confidence"]),
        suggested_actions=[str(action) for action in actions],
        urgency_score=_clamp_urgency(data.get("urgency_score"), 5),
    )


async def classify_text(text: str, context: Any = None) -> ClassificationResult:
    started = time.perf_counter()
    try:
        raw = await _chat_completion([{"role": "user", "content": _build_classification_prompt(text, context)}])
        result = parse_classification(raw)
        result.model_used = settings.OPENAI_MODEL
    except AIClassificationError as exc:
        logger.error("OpenAI classification failed: %s", exc)
        result = fallback_classification()
    result.processing_time_ms = int((time.perf_counter() - started) * 1000)
    return result


def fallback_escalation() -> EscalationAnalysis:
    return EscalationAnalysis(
        should_escalate=False,
        confidence=0.1,
        reasons=["AI analysis unavailable"],
        suggested_priority=CasePriority.normal,
        urgency_score=5,
        risk_factors=[],
        recommendation=(
            "AI analysis unavailable. Please review case manually and use professional judgment "
            "for escalation decision."
        ),
    )


def parse_escalation(raw: str) -> EscalationAnalysis:
    data = parse_json_response(raw)
    if (
        not isinstance(data.get("should_escalate"), bool)
        or not _is_number(data.get("confidence"))
        or not isinstance(data.get("reasons"), list)
        or data.get("suggested_priority") not in ESCALATION_PRIORITIES
        or not _is_number(data.get("urgency_score"))
    ):
        raise AIClassificationError("Invalid escalation analysis structure")

    risk_factors = data.get("risk_factors")
    return EscalationAnalysis(
        should_escalate=data["should_escalate"],
        confidence=_clamp_confidence(data["confidence"]),
        reasons=[str(reason) for reason in data["reasons"]],
        suggested_priority=CasePriority(data["suggested_priority"]),
        urgency_score=_clamp_urgency(data["urgency_score"], 5),
        risk_factors=[str(factor) for factor in risk_factors] if isinstance(risk_factors, list) else [],
        recommendation=str(data.get("recommendation") or ""),
    )


def _build_escalation_prompt(case: Case, user_reason: str | None) -> str:
    submitted = case.submission_date
    if submitted.tzinfo is None:
        submitted = submitted.replace(tzinfo=timezone.utc)
    days_since = (datetime.now(timezone.utc) - submitted).days
    reason_part = f"\n- Manual escalation reason: {user_reason}" if user_reason else ""
    return f"""Analyze the following legal case for escalation necessity:

Case Details:
- Title: {case.title}
- Description: {case.description}
- Current Priority: {case.priority.value}
- Current Status: {case.status.value}
- Issue Category: {case.issue_category.value}
- Jurisdiction: {case.jurisdiction or "Not specified"}
- Days since submission: {days_since}{reason_part}

Consider severity, time sensitivity, public safety, legal complexity, statute of
limitations, evidence preservation and victim vulnerability.

Respond in this exact JSON format:
{{
  "should_escalate": true,
  "confidence": 0.0,
  "reasons": ["reason1", "reason2"],
  "suggested_priority": "Normal|High|Critical",
  "urgency_score": 0,
  "risk_factors": ["factor1", "factor2"],
  "recommendation": "detailed recommendation text"
}}"""


async def analyze_escalation(case: Case, user_reason: str | None = None) -> EscalationAnalysis:
    messages = [
        {
            "role": "system",
            "content": (
                "You are a legal case analysis AI that helps determine if cases need escalation. "
                "Always respond with valid JSON only."
            ),
        },
        {"role": "user", "content": _build_escalation_prompt(case, user_reason)},
    ]
    try:
        analysis = parse_escalation(await _chat_completion(messages, temperature=0.3))
    except AIClassificationError as exc:
        logger.error("AI escalation analysis failed for case %s: %s", case.id, exc)
        return fallback_escalation()
    logger.info(
        "AI escalation analysis for case %s: escalate=%s confidence=%.2f",
        case.id,
        analysis.should_escalate,
        analysis.confidence,
    )
    return analysis


def log_classification(
    session: AsyncSession,
    *,
    input_text: str,
    issue_category: str,
    escalation_level: str,
    confidence: float,
    urgency_score: int,
    suggested_actions: list[str],
    processing_time_ms: int | None = None,
    model_used: str | None = None,
    case_id=None,
) -> AIClassification:
    """Stage an ``ai_classifications`` row; the caller commits."""
    row = AIClassification(
        case_id=case_id,
        input_text=input_text,
        issue_category=issue_category,
        escalation_level=escalation_level,
        confidence=confidence,
        urgency_score=urgency_score,
        suggested_actions=suggested_actions,
        processing_time_ms=processing_time_ms,
        model_used=model_used or settings.OPENAI_MODEL,
    )
    session.add(row)
    logger.info("AI classification logged: %s", issue_category)
    return row


def log_classification_result(
    session: AsyncSession,
    result: ClassificationResult,
    input_text: str,
    case_id=None,
) -> AIClassification:
    return log_classification(
        session,
        input_text=input_text,
        issue_category=result.issue_category.value,
        escalation_level=result.escalation_level.value,
        confidence=result.confidence,
        urgency_score=result.urgency_score,
        suggested_actions=result.suggested_actions,
        processing_time_ms=result.processing_time_ms,
        model_used=result.model_used or "fallback",
        case_id=case_id,
    )


async def classify_and_log(session: AsyncSession, text: str, context: Any = None) -> ClassificationResult:
    result = await classify_text(text, context)
    log_classification_result(session, result, text)
    await session.commit()
    return result


def _own_cases_clause(user: User | None):
    if user is None or user.is_admin:
        return None
    return AIClassification.case_id.in_(select(Case.id).where(Case.user_id == user.id))


def _preview(text: str) -> str:
    if len(text) <= HISTORY_PREVIEW_LENGTH:
        return text
    return text[:HISTORY_PREVIEW_LENGTH] + "..."


async def get_classification_history(
    session: AsyncSession,
    user: User | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[dict[str, Any]], int, int]:
    stmt = select(AIClassification, Case.case_ref).outerjoin(Case, AIClassification.case_id == Case.id)
    clause = _own_cases_clause(user)
    if clause is not None:
        stmt = stmt.where(clause)
    stmt = stmt.order_by(AIClassification.created_at.desc())

    rows, total, page = await paginated_query(session, stmt, page, page_size)
    items = [
        {
            "id": row.id,
            "case_id": row.case_id,
            "case_ref": case_ref,
            "input_text": _preview(row.input_text),
            "issue_category": row.issue_category,
            "escalation_level": row.escalation_level,
            "confidence": row.confidence,
            "urgency_score": row.urgency_score,
            "processing_time_ms": row.processing_time_ms,
            "model_used": row.model_used,
            "created_at": row.created_at,
        }
        for row, case_ref in rows
    ]
    return items, total, page


async def get_classification_stats(
    session: AsyncSession,
    user: User | None = None,
    timeframe: str = "30d",
) -> dict[str, Any]:
    if timeframe not in TIMEFRAMES:
        timeframe = "30d"
    conditions = [AIClassification.created_at > datetime.now(timezone.utc) - TIMEFRAMES[timeframe]]
    clause = _own_cases_clause(user)
    if clause is not None:
        conditions.append(clause)

    def _level_count(level: EscalationLevel):
        return func.count(sa_case((AIClassification.escalation_level == level.value, 1)))

    totals = (
        await session.exec(
            select(
                func.count(AIClassification.id),
                func.avg(AIClassification.confidence),
                func.avg(AIClassification.urgency_score),
                func.avg(AIClassification.processing_time_ms),
                _level_count(EscalationLevel.basic),
                _level_count(EscalationLevel.priority),
                _level_count(EscalationLevel.urgent),
            ).where(*conditions)
        )
    ).one()
    total, avg_confidence, avg_urgency, avg_time, basic, priority, urgent = totals

    category_count = func.count(AIClassification.id).label("category_count")
    categories = await session.exec(
        select(AIClassification.issue_category, category_count, func.avg(AIClassification.confidence))
        .where(*conditions)
        .group_by(AIClassification.issue_category)
        .order_by(category_count.desc())
    )

    def _as_float(value) -> float | None:
        return float(value) if value is not None else None

    return {
        "timeframe": timeframe,
        "total_classifications": total,
        "avg_confidence": _as_float(avg_confidence),
        "avg_urgency": _as_float(avg_urgency),
        "avg_processing_time_ms": _as_float(avg_time),
        "basic_count": basic,
        "priority_count": priority,
        "urgent_count": urgent,
        "categories": [
            {"issue_category": category, "count": count, "avg_confidence": _as_float(avg)}
            for category, count, avg in categories.all()
        ],
    }


def fallback_summary(case: Case) -> str:
    return (
        f"Case Summary: {case.case_ref} - {case.issue_category.value} case requiring "
        f"{case.escalation_level.value} attention. Manual summary required due to AI processing error."
    )


async def generate_case_summary(case: Case) -> str:
    prompt = f"""Generate a professional case summary for the following crime report:

Case Reference: {case.case_ref}
Client: {case.client_name}
Issue Category: {case.issue_category.value}
Escalation Level: {case.escalation_level.value}
Description: {case.description}
Jurisdiction: {case.jurisdiction or "Not specified"}

Create a concise, professional summary (max 200 words) that summarizes the key
facts, identifies the main legal issues, notes the urgency level and suggests
next steps.

Format as plain text, professional tone."""
    try:
        summary = await _chat_completion([{"role": "user", "content": prompt}], temperature=0.3, max_tokens=300)
    except AIClassificationError as exc:
        logger.error("Case summary generation failed for %s: %s", case.case_ref, exc)
        return fallback_summary(case)
    return summary.strip()
