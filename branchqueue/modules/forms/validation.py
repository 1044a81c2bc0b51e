"""Intake form validation.

Required fields must carry a non-blank value. Type checks (number, date,
e-mail, select membership) only block a submission when the field is
required; on optional fields they are reported as warnings so kiosk users
are not stopped by a badly typed optional answer.
"""
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Protocol

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class FieldDefinition(Protocol):
    name: str
    label: str
    type: str
    required: bool
    options: list | None


@dataclass
class FieldIssue:
    field: str
    label: str
    message: str

    def as_dict(self) -> dict:
        return {"field": self.field, "label": self.label, "message": self.message}


@dataclass
class FormValidationResult:
    errors: list[FieldIssue] = field(default_factory=list)
    warnings: list[FieldIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _is_missing(kind: str, value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if kind == "checkbox" and value is False:
        return True
    if isinstance(value, (list, dict)) and not value:
        return True
    return False


def _option_values(options: list | None) -> set[str]:
    values = set()
    for opt in options or []:
        if isinstance(opt, dict):
            values.add(str(opt.get("value", opt.get("label"))))
        else:
            values.add(str(opt))
    return values


def _type_problem(kind: str, value: Any, options: list | None) -> str | None:
    if kind == "number":
        if isinstance(value, bool):
            return "must be a number"
        try:
            Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return "must be a number"
    elif kind == "date":
        if isinstance(value, (date, datetime)):
            return None
        text = str(value).strip()
        try:
            if "T" in text:
                datetime.fromisoformat(text)
            else:
                date.fromisoformat(text)
        except ValueError:
            return "must be a date (YYYY-MM-DD)"
    elif kind == "email":
        if not _EMAIL_RE.match(str(value).strip()):
            return "must be a valid e-mail address"
    elif kind == "select":
        allowed = _option_values(options)
        if allowed and str(value) not in allowed:
            return "is not one of the available options"
    elif kind == "checkbox":
        if not isinstance(value, bool):
            return "must be true or false"
    return None


def validate_form(fields: Iterable[FieldDefinition], values: dict[str, Any] | None) -> FormValidationResult:
    values = values or {}
    result = FormValidationResult()
    for f in fields:
        value = values.get(f.name)
        if _is_missing(f.type, value):
            if f.required:
                result.errors.append(FieldIssue(f.name, f.label, "is required"))
            continue
        problem = _type_problem(f.type, value, f.options)
        if problem:
            issue = FieldIssue(f.name, f.label, problem)
            (result.errors if f.required else result.warnings).append(issue)
    return result
