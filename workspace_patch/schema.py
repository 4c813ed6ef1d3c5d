"""Request envelope schema.

A patch request is one of two tagged variants, selected by ``format``:

- ``unified-diff`` (default): ``{"patch": "<diff text>", "commit": false}``
- ``structured``: ``{"patch": [ops...] | "<json>", "targetFile": "cfg.json", "commit": false}``

The legacy names ``git-diff`` and ``json-patch`` are accepted as aliases.
Unknown fields are rejected so typos such as ``confirm`` vs ``commit`` do not
silently turn a commit into a preview.
"""
from __future__ import annotations

from typing import Annotated, Any, List, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .exceptions import InputError

UNIFIED_DIFF = "unified-diff"
STRUCTURED = "structured"

FORMAT_ALIASES: dict[str, str] = {
    UNIFIED_DIFF: UNIFIED_DIFF,
    "git-diff": UNIFIED_DIFF,
    "diff": UNIFIED_DIFF,
    STRUCTURED: STRUCTURED,
    "json-patch": STRUCTURED,
}


class _RequestBase(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    commit: bool = False


class UnifiedDiffRequest(_RequestBase):
    """Apply a (multi-file) unified diff; paths come from the diff headers."""

    format: Literal["unified-diff"] = UNIFIED_DIFF
    patch: str = Field(min_length=1)
    target_file: str | None = Field(default=None, alias="targetFile")


class StructuredPatchRequest(_RequestBase):
    """Apply add/remove/replace operations to one structured document."""

    format: Literal["structured"] = STRUCTURED
    patch: Union[str, List[Any]]
    target_file: str = Field(alias="targetFile", min_length=1)

    @field_validator("patch")
    @classmethod
    def patch_not_empty(cls, v: Union[str, List[Any]]) -> Union[str, List[Any]]:
        if isinstance(v, str) and not v.strip():
            raise ValueError("patch must not be empty")
        return v


PatchRequest = Annotated[
    Union[UnifiedDiffRequest, StructuredPatchRequest],
    Field(discriminator="format"),
]

_request_adapter: TypeAdapter[Union[UnifiedDiffRequest, StructuredPatchRequest]] = TypeAdapter(PatchRequest)


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"] if part not in (UNIFIED_DIFF, STRUCTURED))
        problems.append(f"{location or 'request'}: {item['msg']}")
    return "; ".join(problems)


def parse_request(payload: Mapping[str, Any]) -> Union[UnifiedDiffRequest, StructuredPatchRequest]:
    """Validate a raw request payload into a typed request.

    Raises:
        InputError: for missing/malformed fields or an unsupported format.
    """

    if not isinstance(payload, Mapping):
        raise InputError("Request params must be an object")

    data = dict(payload)
    if data.get("patch") in (None, "", []):
        raise InputError("Missing required param: patch")

    raw_format = data.get("format") or UNIFIED_DIFF
    if not isinstance(raw_format, str) or raw_format not in FORMAT_ALIASES:
        raise InputError(
            f'Unsupported patch format: "{raw_format}". Supported: {UNIFIED_DIFF}, {STRUCTURED}'
        )
    data["format"] = FORMAT_ALIASES[raw_format]

    if data["format"] == STRUCTURED and not data.get("targetFile") and not data.get("target_file"):
        raise InputError(f"{STRUCTURED} format requires param: targetFile")

    try:
        return _request_adapter.validate_python(data)
    except ValidationError as e:
        raise InputError(f"Invalid request: {_format_validation_error(e)}") from e
