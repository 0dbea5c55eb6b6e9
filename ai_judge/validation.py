"""
Parsing and schema validation of structured generation output.

Backends are asked for a JSON object but often wrap it in prose or a
markdown fence. The first top-level ``{...}`` span is decoded and checked
against a pydantic schema. Unknown fields are ignored.
"""

import json
import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as SchemaError, field_validator, model_validator

logger = logging.getLogger(__name__)


class ResponseValidationError(ValueError):
    """Generation output could not be parsed or did not match its schema."""


def _strip_fences(text: str) -> str:
    if "```json" in text:
        start = text.find("```json") + 7
        end = text.find("```", start)
        if end > start:
            return text[start:end]
    elif "```" in text:
        start = text.find("```") + 3
        end = text.find("```", start)
        if end > start:
            return text[start:end]
    return text


def find_json_span(text: str) -> Optional[str]:
    """Return the first balanced top-level {...} span, honouring JSON strings."""
    depth = 0
    start = None
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def extract_json_object(text: str) -> dict:
    if not text or not text.strip():
        raise ResponseValidationError("Empty response")

    span = find_json_span(_strip_fences(text)) or find_json_span(text)
    if span is None:
        logger.debug(f"No JSON found in response: {text[:500]!r}")
        raise ResponseValidationError("No JSON found in response")

    try:
        data = json.loads(span)
    except json.JSONDecodeError as e:
        raise ResponseValidationError(f"Malformed JSON in response: {e}") from e
    if not isinstance(data, dict):
        raise ResponseValidationError("Response JSON is not an object")
    return data


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class JudgmentPayload(_Payload):
    verdict: str
    reasoning: str
    legal_basis: Optional[List[str]] = Field(default=None, alias="legalBasis")
    confidence: Optional[float] = Field(default=None, ge=0, le=100)

    @field_validator("verdict", "reasoning")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v


class ArgumentPayload(_Payload):
    response: str
    strengthens: Optional[str] = None
    weakens: Optional[str] = None
    uncertainty_remains: Optional[str] = Field(default=None, alias="uncertaintyRemains")
    reconsidered: Optional[bool] = None
    updated_reasoning: Optional[str] = Field(default=None, alias="updatedReasoning")
    provisional_note: Optional[str] = Field(default=None, alias="provisionalNote")
    confidence: Optional[float] = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def reasoning_when_reconsidered(self):
        if self.reconsidered and not (self.updated_reasoning or "").strip():
            raise ValueError("updatedReasoning is required when reconsidered is true")
        return self


def _validate(model, text: str, label: str):
    data = extract_json_object(text)
    try:
        return model.model_validate(data)
    except SchemaError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or label}: {err['msg']}" for err in e.errors()
        )
        raise ResponseValidationError(f"Invalid {label} schema: {errors}") from e


def parse_judgment(text: str) -> JudgmentPayload:
    return _validate(JudgmentPayload, text, "judgment")


def parse_argument(text: str) -> ArgumentPayload:
    return _validate(ArgumentPayload, text, "argument")


def normalize_side(value: Optional[str]) -> Optional[str]:
    """Map "Side A" / "side b" / "Neither" onto A, B or Neither."""
    if not value:
        return None
    token = value.strip().lower()
    if token.startswith("side "):
        token = token[5:].strip()
    if token == "a":
        return "A"
    if token == "b":
        return "B"
    if token in ("neither", "none"):
        return "Neither"
    return None


def clamp(value: float, low: int, high: int) -> int:
    return int(min(max(round(value), low), high))
