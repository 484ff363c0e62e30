"""
Matching submitted registration answers against an event's form fields.
"""
import math
from datetime import datetime
from typing import Any, Dict, Iterable, List

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from database import as_utc
from errors import ValidationError
from schemas import Answer, AnswerInput

_datetime_adapter = TypeAdapter(datetime)

BSON_INT_MIN = -(2 ** 63)
BSON_INT_MAX = 2 ** 63 - 1


def _number(value: Any):
    if isinstance(value, bool):
        raise ValueError("not a number")
    if not isinstance(value, (int, float)):
        text = str(value).strip()
        try:
            value = int(text)
        except ValueError:
            value = float(text)

    # BSON stores at most a signed 64-bit integer or a finite double
    if isinstance(value, int) and not BSON_INT_MIN <= value <= BSON_INT_MAX:
        raise ValueError("number out of range")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("number out of range")
    return value


def _date(value: Any) -> datetime:
    try:
        return as_utc(_datetime_adapter.validate_python(value))
    except PydanticValidationError:
        raise ValueError("not a date")


def _text(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def typed_slot(field_type: str, value: Any) -> Dict[str, Any]:
    """The answer slot a value goes into for the given field type."""
    if field_type == "number":
        return {"value_number": _number(value)}
    if field_type == "date":
        return {"value_date": _date(value)}
    return {"value_text": _text(value)}


def process_answers(event: Dict[str, Any], submitted: Iterable[AnswerInput]) -> List[Answer]:
    """Answers for known fields, label snapshotted, value in its typed slot.

    Answers naming a field the event does not have are dropped. A value that
    cannot be read as the field's type fails the whole submission.
    """
    fields = {f["field_id"]: f for f in event.get("form_fields") or []}
    answers = []
    errors = []
    for item in submitted:
        field = fields.get(item.field_id)
        if field is None:
            continue
        if item.value is None:
            answers.append(Answer(field_id=item.field_id, field_label=field["label"]))
            continue
        try:
            slot = typed_slot(field["field_type"], item.value)
            answer = Answer(field_id=item.field_id, field_label=field["label"], **slot)
        except ValueError:
            # pydantic's ValidationError is a ValueError too
            errors.append({
                "field": f"answers.{item.field_id}",
                "message": f"'{field['label']}' expects a {field['field_type']} value",
            })
            continue
        answers.append(answer)

    if errors:
        raise ValidationError("Invalid form answers", errors=errors)
    return answers
