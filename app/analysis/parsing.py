"""Decode and validate the inference service's JSON answer.

Decoding is deliberately lenient about formatting noise (markdown fences,
prose around the object) and strict about content: every ingredient must
carry a name, an explanation and one of the three known classifications.
"""

import json
import logging
import re
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, Field, StringConstraints, ValidationError

from app.analysis.errors import AnalysisError, AnalysisErrorKind
from app.jobs.models import AnalysisResult, Classification, Ingredient

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?|\n?```")

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class _RawIngredient(BaseModel):
    name: NonEmptyStr
    classification: Classification
    explanation: NonEmptyStr


class _RawAnalysis(BaseModel):
    ingredients: List[Any] = Field(...)


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def find_first_object(text: str) -> Optional[str]:
    """Return the first balanced top-level {...} span, honouring JSON strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from here; try the next opening brace
        start = text.find("{", start + 1)
    return None


def extract_json(text: str) -> Any:
    """Parse JSON out of a model response or raise a parse_failure AnalysisError."""
    if not isinstance(text, str):
        raise AnalysisError(AnalysisErrorKind.PARSE_FAILURE, "response was not text")

    clean = strip_code_fences(text)
    try:
        return json.loads(clean)
    except ValueError:
        logger.debug("Failed to parse entire text, trying to extract JSON object")

    candidate = find_first_object(clean)
    if candidate is not None:
        try:
            return json.loads(candidate)
        except ValueError:
            pass

    logger.error("No valid JSON found in analysis response: %r", text[:2000])
    raise AnalysisError(AnalysisErrorKind.PARSE_FAILURE, "no valid JSON object in response")


def _describe(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ())) or "value"
    return f"{loc}: {err.get('msg', 'invalid')}"


def validate_analysis(payload: Any, drop_invalid: bool = False) -> AnalysisResult:
    """Check the decoded payload against the closed ingredient schema.

    With drop_invalid, offending ingredients are logged and skipped;
    otherwise the first one fails the whole analysis.
    """
    if not isinstance(payload, dict):
        raise AnalysisError(
            AnalysisErrorKind.SCHEMA_VIOLATION, "response is not a JSON object"
        )
    try:
        raw = _RawAnalysis.model_validate(payload)
    except ValidationError as exc:
        raise AnalysisError(AnalysisErrorKind.SCHEMA_VIOLATION, _describe(exc)) from exc

    ingredients = []
    for index, item in enumerate(raw.ingredients):
        try:
            parsed = _RawIngredient.model_validate(item)
        except ValidationError as exc:
            message = f"ingredient {index} {_describe(exc)}"
            if drop_invalid:
                logger.warning("Dropping invalid ingredient: %s (%r)", message, item)
                continue
            raise AnalysisError(AnalysisErrorKind.SCHEMA_VIOLATION, message) from exc
        ingredients.append(
            Ingredient(
                name=parsed.name,
                classification=parsed.classification,
                explanation=parsed.explanation,
            )
        )

    return AnalysisResult(ingredients=ingredients)
