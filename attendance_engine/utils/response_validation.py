"""Structural validation of query answers before they reach a caller."""

from typing import Any, Literal

from pydantic import BaseModel

from attendance_engine.exceptions import ResponseValidationError, ResponseValidationErrorType
from attendance_engine.schemas.query import ConfidenceLevel


class ResponseSchema(BaseModel):
    """Required fields, field JSON types and nested schemas of a response."""

    required_fields: list[str]
    field_types: dict[str, Literal["string", "object"]] = {}
    nested_schemas: dict[str, "ResponseSchema"] = {}


JSON_TYPES = {"string": str, "object": dict}

ACTION_SCHEMA = ResponseSchema(
    required_fields=["type", "label"],
    field_types={"type": "string", "label": "string", "params": "object"},
)

ANSWER_SCHEMA = ResponseSchema(
    required_fields=["answer", "confidence"],
    nested_schemas={"suggested_actions": ACTION_SCHEMA},
)


def validate_response(
    response: Any,
    schema: ResponseSchema = ANSWER_SCHEMA,
) -> list[ResponseValidationError]:
    """Collect every way a response breaks its schema.

    Missing required fields are MISSING_FIELD errors; a response that is not
    a mapping, a field of the wrong JSON type, or a nested item that fails its
    schema, is INVALID_FORMAT.
    Absent optional nested fields are skipped.
    """
    if not isinstance(response, dict):
        return [
            ResponseValidationError(
                ResponseValidationErrorType.INVALID_FORMAT,
                "Response is not an object",
            )
        ]

    errors = [
        ResponseValidationError(
            ResponseValidationErrorType.MISSING_FIELD,
            f"Required field '{name}' is missing",
            field=name,
        )
        for name in schema.required_fields
        if response.get(name) is None
    ]

    for name, kind in schema.field_types.items():
        value = response.get(name)
        if value is not None and not isinstance(value, JSON_TYPES[kind]):
            errors.append(
                ResponseValidationError(
                    ResponseValidationErrorType.INVALID_FORMAT,
                    f"Field '{name}' must be a JSON {kind}",
                    field=name,
                )
            )

    for name, nested in schema.nested_schemas.items():
        value = response.get(name)
        if not value:
            continue
        items = value if isinstance(value, list) else [value]
        for index, item in enumerate(items):
            if validate_response(item, nested):
                location = f"{name}[{index}]" if isinstance(value, list) else name
                errors.append(
                    ResponseValidationError(
                        ResponseValidationErrorType.INVALID_FORMAT,
                        f"'{location}' failed validation",
                        field=location,
                    )
                )

    return errors


def validate_answer(response: Any) -> None:
    """Check a query answer, raising the first problem found.

    Beyond the required fields, ``confidence`` must be a number in [0, 1] and
    ``data`` an object when present.

    Raises:
        ResponseValidationError: If the answer is malformed
    """
    errors = validate_response(response, ANSWER_SCHEMA)
    if errors:
        raise errors[0]

    confidence = response["confidence"]
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise ResponseValidationError(
            ResponseValidationErrorType.INVALID_FORMAT,
            "Field 'confidence' must be a number",
            field="confidence",
        )
    if not 0 <= confidence <= 1:
        raise ResponseValidationError(
            ResponseValidationErrorType.INVALID_FORMAT,
            "Field 'confidence' must be between 0 and 1",
            field="confidence",
        )
    if not isinstance(response["answer"], str) or not response["answer"].strip():
        raise ResponseValidationError(
            ResponseValidationErrorType.INVALID_FORMAT,
            "Field 'answer' must be a non-empty string",
            field="answer",
        )
    if response.get("data") is not None and not isinstance(response["data"], dict):
        raise ResponseValidationError(
            ResponseValidationErrorType.INVALID_FORMAT,
            "Field 'data' must be an object",
            field="data",
        )
    actions = response.get("suggested_actions")
    if actions is not None and not isinstance(actions, list):
        raise ResponseValidationError(
            ResponseValidationErrorType.INVALID_FORMAT,
            "Field 'suggested_actions' must be a list",
            field="suggested_actions",
        )


def interpret_confidence(score: float) -> ConfidenceLevel:
    """Map a confidence score to a qualitative level."""
    if score >= 0.8:
        return ConfidenceLevel.HIGH
    if score >= 0.5:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW
