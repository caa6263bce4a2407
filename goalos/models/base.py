"""Shared pieces of the GoalOS entity models"""

import re
import secrets
import string
from typing import Any, Dict, Literal, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from goalos.core.errors import ValidationError

SCHEMA_VERSION = 1

_BASE36 = string.digits + string.ascii_lowercase
_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")

ModelT = TypeVar("ModelT", bound=BaseModel)


class Record(BaseModel):
    """Base for every persisted, schema-versioned record"""

    model_config = ConfigDict(populate_by_name=True)

    schema_version: Literal[1] = SCHEMA_VERSION


def to_document(model: BaseModel) -> Dict[str, Any]:
    """Dump a model into a plain document suitable for YAML/JSON"""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def coerce_input(model_cls: Type[ModelT], data: Union[ModelT, Dict[str, Any]]) -> ModelT:
    """
    Turn caller input into a validated input model

    Pydantic failures are re-raised as GoalOS ValidationError naming the
    first offending field.
    """
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(first.get("msg", str(e)), field=field) from e


def require_text(value: Any, field: str) -> str:
    """Reject missing or whitespace-only text"""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field}' must not be blank", field=field)
    return value


def slugify(name: str, limit: int) -> str:
    """Lowercase, collapse non-alphanumerics to '_', truncate to limit"""
    return _SLUG_PATTERN.sub("_", name.lower())[:limit]


def random_suffix(length: int) -> str:
    """Short random base-36 suffix used to separate same-instant ids"""
    return "".join(secrets.choice(_BASE36) for _ in range(length))
