"""Input hygiene shared by request schemas."""

from typing import ClassVar

import bleach
from pydantic import BaseModel, model_validator


class SecurityMixin(BaseModel):
    """Strip markup and surrounding whitespace from every top-level string field.

    Fields listed in ``raw_text_fields`` (e.g. Markdown bodies rendered later)
    are left untouched.
    """

    raw_text_fields: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="before")
    @classmethod
    def _sanitize_strings(cls, data):
        if not isinstance(data, dict):
            return data
        raw = set(cls.raw_text_fields)
        cleaned = {}
        for key, value in data.items():
            if isinstance(value, str) and key not in raw:
                if "<" in value:
                    value = bleach.clean(value, tags=set(), strip=True)
                value = value.strip()
            cleaned[key] = value
        return cleaned
