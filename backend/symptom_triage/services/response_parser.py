"""
Symptom Triage - Provider Response Parsing and Sanitization

Turns a provider's free-text or JSON reply into a TriageResult.

Parsing:
    1. Locate the first top-level JSON object in the reply (the first "{"
       through its matching "}", skipping braces inside strings)
    2. If it parses to an object, sanitize it
    3. Otherwise scan the lowercased prose for priority markers and
       synthesize a best-effort result

Sanitization is applied on every path and never raises. It is the last line
of defense before a result reaches a session. Every clamp or default is
logged as a "validation_clamped" event.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Iterable, List, Mapping, Optional, Union

from symptom_triage.core.exceptions import ResponseParseError
from symptom_triage.core.logging import log_event
from symptom_triage.core.types import (
    DEFAULT_CONFIDENCE,
    DEFAULT_EXPLANATION,
    DEFAULT_NEXT_STEP,
    DEFAULT_RECOMMENDATION,
    DEFAULT_RISK_SCORE,
    EMERGENCY_RISK_SCORE,
    MEDICAL_DISCLAIMER,
    NON_URGENT_RISK_SCORE,
    URGENT_RISK_SCORE,
    Priority,
    TriageResult,
)

logger = logging.getLogger(__name__)


# Markers searched for in unstructured replies, most severe first
PROSE_EMERGENCY_MARKERS = ("emergency", "911", "immediate")
PROSE_URGENT_MARKERS = ("urgent", "24 hours")
PROSE_CONFIDENCE = 0.6


# =============================================================================
# JSON Extraction
# =============================================================================

def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} span in text, or None.

    Braces inside JSON strings (including escaped quotes) do not count
    towards nesting.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    return None


def load_json_object(text: str) -> dict:
    """
    Extract and decode the first JSON object in text.

    Raises:
        ResponseParseError: no object found, invalid JSON, or not an object
    """
    candidate = extract_json_object(text)
    if candidate is None:
        raise ResponseParseError("No JSON object found in provider reply")

    try:
        parsed = json.loads(candidate)
    except ValueError as e:
        raise ResponseParseError(
            "Invalid JSON in provider reply",
            details={"error": str(e)},
        ) from e

    if not isinstance(parsed, dict):
        raise ResponseParseError("Provider JSON is not an object")

    return parsed


# =============================================================================
# Unstructured Fallback
# =============================================================================

def parse_unstructured_response(
    text: str,
    red_flag_keywords: Iterable[str] = (),
) -> dict:
    """
    Best-effort triage fields from prose.

    Always produces a result; emergency markers dominate urgent markers.
    """
    lowered = text.lower()

    if any(marker in lowered for marker in PROSE_EMERGENCY_MARKERS):
        priority, risk_score = Priority.EMERGENCY, EMERGENCY_RISK_SCORE
    elif any(marker in lowered for marker in PROSE_URGENT_MARKERS):
        priority, risk_score = Priority.URGENT, URGENT_RISK_SCORE
    else:
        priority, risk_score = Priority.NON_URGENT, NON_URGENT_RISK_SCORE

    red_flags = [keyword for keyword in red_flag_keywords if keyword in lowered]

    return {
        "priority": priority.value,
        "risk_score": risk_score,
        "confidence": PROSE_CONFIDENCE,
        "recommendations": ["Consult a healthcare provider for proper evaluation"],
        "red_flags": red_flags,
        "explanation": (
            "The analysis service returned an unstructured reply; this "
            "assessment was derived from keywords in that reply."
        ),
        "next_steps": ["Monitor symptoms and seek medical attention if needed"],
        "follow_up_questions": [],
    }


def parse_provider_response(
    text: str,
    source: str,
    red_flag_keywords: Iterable[str] = (),
) -> TriageResult:
    """
    Parse a raw provider reply into a sanitized TriageResult.

    Args:
        text: Raw reply text
        source: Provider identifier recorded on the result
        red_flag_keywords: Keywords reported as red flags on the prose path
    """
    try:
        parsed = load_json_object(text)
    except ResponseParseError as e:
        logger.info("Structured parse failed (%s); using keyword heuristic", e.message)
        return sanitize_result(
            parse_unstructured_response(text, red_flag_keywords),
            source=source,
            degraded=True,
        )

    return sanitize_result(parsed, source=source, degraded=False)


# =============================================================================
# Sanitization
# =============================================================================

def _clamped(field_name: str, raw: Any, sanitized: Any) -> None:
    log_event(
        logger,
        logging.INFO,
        f"Sanitized field '{field_name}'",
        event_type="validation_clamped",
        data={"field": field_name, "raw": repr(raw)[:80], "sanitized": sanitized},
    )


def _coerce_number(value: Any) -> Optional[float]:
    """
    Float from a number or numeric string, else None.

    NaN counts as non-numeric. Infinities and integers too large for a float
    are kept as +/-inf so the caller clamps them.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        try:
            number = float(value)
        except OverflowError:
            number = math.inf if value > 0 else -math.inf
    elif isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _coerce_priority(value: Any) -> Priority:
    if isinstance(value, Priority):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        try:
            priority = Priority(normalized)
        except ValueError:
            pass
        else:
            if normalized != value:
                _clamped("priority", value, priority.value)
            return priority
    _clamped("priority", value, Priority.NON_URGENT.value)
    return Priority.NON_URGENT


def _coerce_risk_score(value: Any) -> int:
    number = _coerce_number(value)
    if number is None:
        _clamped("risk_score", value, DEFAULT_RISK_SCORE)
        return DEFAULT_RISK_SCORE

    score = int(round(max(0.0, min(100.0, number))))
    if score != value:
        _clamped("risk_score", value, score)
    return score


def _coerce_confidence(value: Any) -> float:
    number = _coerce_number(value)
    if number is None:
        _clamped("confidence", value, DEFAULT_CONFIDENCE)
        return DEFAULT_CONFIDENCE

    confidence = max(0.0, min(1.0, number))
    if confidence != value:
        _clamped("confidence", value, confidence)
    return confidence


def _coerce_string_list(field_name: str, value: Any) -> Optional[List[str]]:
    """
    List of non-empty stripped strings, or None when missing/malformed.

    A bare string becomes a one-item list; numbers are stringified; other
    item types are dropped.
    """
    if value is None:
        return None

    if isinstance(value, str):
        items: List[Any] = [value]
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        _clamped(field_name, value, None)
        return None

    cleaned = []
    for item in items:
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            continue
        text = str(item).strip()
        if text:
            cleaned.append(text)

    if cleaned != items or isinstance(value, str):
        _clamped(field_name, value, cleaned)
    return cleaned


def _coerce_text(field_name: str, value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if value is not None:
        _clamped(field_name, value, default)
    return default


def sanitize_result(
    raw: Union[Mapping[str, Any], TriageResult],
    source: Optional[str] = None,
    degraded: Optional[bool] = None,
) -> TriageResult:
    """
    Coerce a raw mapping (or an existing result) into a valid TriageResult.

    Never raises. Sanitizing an already-sanitized result returns an equal
    result.

    Args:
        raw: Parsed provider JSON, heuristic fields, or a TriageResult
        source: Overrides the result's source field when given
        degraded: Overrides the result's degraded flag when given
    """
    try:
        if isinstance(raw, TriageResult):
            data: Mapping[str, Any] = raw.to_dict()
        elif isinstance(raw, Mapping):
            data = raw
        else:
            raise TypeError(f"cannot sanitize {type(raw).__name__}")

        recommendations = _coerce_string_list("recommendations", data.get("recommendations"))
        if not recommendations:
            recommendations = [DEFAULT_RECOMMENDATION]

        next_steps = _coerce_string_list("next_steps", data.get("next_steps"))
        if not next_steps:
            next_steps = [DEFAULT_NEXT_STEP]

        red_flags = _coerce_string_list("red_flags", data.get("red_flags")) or []
        follow_ups = _coerce_string_list(
            "follow_up_questions", data.get("follow_up_questions")
        ) or []

        if source is None:
            source = data.get("source") if isinstance(data.get("source"), str) else "provider"
        if degraded is None:
            degraded = bool(data.get("degraded", False))

        return TriageResult(
            priority=_coerce_priority(data.get("priority")),
            risk_score=_coerce_risk_score(data.get("risk_score")),
            confidence=_coerce_confidence(data.get("confidence")),
            recommendations=tuple(recommendations),
            red_flags=tuple(red_flags),
            explanation=_coerce_text("explanation", data.get("explanation"), DEFAULT_EXPLANATION),
            next_steps=tuple(next_steps),
            follow_up_questions=tuple(follow_ups),
            medical_disclaimer=_coerce_text(
                "medical_disclaimer", data.get("medical_disclaimer"), MEDICAL_DISCLAIMER
            ),
            source=source,
            degraded=degraded,
        )

    except Exception as e:
        logger.error("Sanitizer could not coerce provider output: %s", e, exc_info=True)
        return TriageResult.create_failsafe("Provider output could not be validated")
