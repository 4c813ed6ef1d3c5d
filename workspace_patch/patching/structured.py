"""Apply add/remove/replace operations to a JSON or YAML document.

This is the RFC 6902 subset agents use to edit configuration files:

    [{"op": "replace", "path": "/debug", "value": true},
     {"op": "add", "path": "/plugins/-", "value": "lint"}]

All operations are validated before the first one is applied, so an invalid
sequence leaves the document untouched. Missing intermediate objects are
created for ``add``/``replace``; a final ``-`` segment appends to an array.
"""
from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Union

import yaml

from ..exceptions import ApplyError, InputError, ParseError
from ..logging import get_logger

logger = get_logger(__name__)

APPEND_SEGMENT = "-"
YAML_SUFFIXES = (".yaml", ".yml")


class OpKind(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    REPLACE = "replace"


class DocumentFormat(str, Enum):
    JSON = "json"
    YAML = "yaml"

    @classmethod
    def for_path(cls, path: str) -> "DocumentFormat":
        return cls.YAML if path.lower().endswith(YAML_SUFFIXES) else cls.JSON


_MISSING = object()


@dataclass(frozen=True)
class StructuredOp:
    """One operation addressed by slash-delimited path segments."""

    kind: OpKind
    path: tuple[str, ...]
    value: Any = None

    @property
    def pointer(self) -> str:
        return "/" + "/".join(seg.replace("~", "~0").replace("/", "~1") for seg in self.path)

    @classmethod
    def from_dict(cls, raw: Any, index: int) -> "StructuredOp":
        """Validate a wire-format operation object."""

        if not isinstance(raw, Mapping):
            raise InputError(f"Operation {index} must be an object with 'op' and 'path' fields")

        op = raw.get("op")
        pointer = raw.get("path")
        if not op or not pointer:
            raise InputError(f'Invalid operation {index}: each entry needs "op" and "path" fields')
        if op not in {kind.value for kind in OpKind}:
            raise InputError(
                f"Unsupported operation type in operation {index}: {op}. Supported: add, remove, replace",
                hint="move, copy and test are not supported",
            )
        if not isinstance(pointer, str):
            raise InputError(f"Operation {index}: 'path' must be a string")

        segments = split_pointer(pointer)
        if not segments:
            raise InputError(f"Operation {index}: path {pointer!r} does not address a member")

        kind = OpKind(op)
        if kind is not OpKind.REMOVE and "value" not in raw:
            raise InputError(f"Operation {index} ({op} {pointer}) is missing 'value'")

        return cls(kind=kind, path=segments, value=raw.get("value"))


def split_pointer(pointer: str) -> tuple[str, ...]:
    """Split ``/a/b~1c/0`` into ``("a", "b/c", "0")``; empty segments are dropped."""
    return tuple(
        seg.replace("~1", "/").replace("~0", "~")
        for seg in pointer.split("/")
        if seg
    )


def parse_operations(patch: Union[str, Sequence[Any]]) -> List[StructuredOp]:
    """Decode and validate an operation list given as JSON text or a list."""

    operations: Any = patch
    if isinstance(patch, str):
        try:
            operations = json.loads(patch)
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON Patch: {e}") from e
    if not isinstance(operations, list):
        raise InputError("Invalid JSON Patch: expected array of operations")
    return [StructuredOp.from_dict(raw, index) for index, raw in enumerate(operations)]


def _array_index(segment: str, size: int, *, allow_end: bool) -> Optional[int]:
    if not segment.isdigit():
        return None
    index = int(segment)
    limit = size if allow_end else size - 1
    return index if index <= limit else None


class StructuredPatchEngine:
    """Parse, patch and re-serialize one structured document.

    Args:
        lenient: Treat removal of a missing path as a no-op.
    """

    def __init__(self, *, lenient: bool = False):
        self.lenient = lenient

    # -- document codec ------------------------------------------------------

    @staticmethod
    def load(text: str, fmt: DocumentFormat = DocumentFormat.JSON) -> Any:
        try:
            if fmt is DocumentFormat.YAML:
                return yaml.safe_load(text)
            return json.loads(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            label = "YAML" if fmt is DocumentFormat.YAML else "JSON"
            raise ParseError(f"Target file is not valid {label}: {e}") from e

    @staticmethod
    def dump(document: Any, fmt: DocumentFormat = DocumentFormat.JSON, *, trailing_newline: bool = False) -> str:
        if fmt is DocumentFormat.YAML:
            return yaml.safe_dump(document, default_flow_style=False, sort_keys=False, allow_unicode=True)
        text = json.dumps(document, indent=2, ensure_ascii=False)
        return text + "\n" if trailing_newline else text

    # -- application ---------------------------------------------------------

    def apply(
        self,
        document_text: str,
        operations: Union[str, Sequence[Any]],
        fmt: DocumentFormat = DocumentFormat.JSON,
    ) -> str:
        """Apply ``operations`` to ``document_text`` and return the new text."""

        ops = operations if _is_op_list(operations) else parse_operations(operations)
        document = self.load(document_text, fmt)
        patched = self.apply_to(document, ops)
        return self.dump(patched, fmt, trailing_newline=document_text.endswith("\n"))

    def apply_to(self, document: Any, operations: Sequence[StructuredOp]) -> Any:
        """Apply operations to a parsed document; the input is not mutated."""

        result = copy.deepcopy(document)
        for index, op in enumerate(operations):
            if op.kind is OpKind.REMOVE:
                result = self._remove(result, op, index)
            else:
                result = self._set(result, op, index)
            logger.debug("structured_op_applied", op=op.kind.value, path=op.pointer)
        return result

    def _fail(self, op: StructuredOp, index: int, message: str) -> ApplyError:
        return ApplyError(f"Operation {index} ({op.kind.value} {op.pointer}): {message}")

    def _set(self, document: Any, op: StructuredOp, index: int) -> Any:
        if document is None:
            document = {}
        current = document
        for segment in op.path[:-1]:
            current = self._descend(current, segment, op, index)

        last = op.path[-1]
        if isinstance(current, list):
            if last == APPEND_SEGMENT:
                current.append(op.value)
                return document
            is_add = op.kind is OpKind.ADD
            position = _array_index(last, len(current), allow_end=is_add)
            if position is None:
                raise self._fail(op, index, f"array index {last!r} is out of range")
            if is_add:
                current.insert(position, op.value)
            else:
                current[position] = op.value
        elif isinstance(current, dict):
            current[last] = op.value
        else:
            raise self._fail(op, index, f"cannot set {last!r} on a {type(current).__name__}")
        return document

    def _descend(self, current: Any, segment: str, op: StructuredOp, index: int) -> Any:
        if isinstance(current, dict):
            child = current.get(segment, _MISSING)
            if child is _MISSING:
                child = current[segment] = {}
            return child
        if isinstance(current, list):
            position = _array_index(segment, len(current), allow_end=False)
            if position is None:
                raise self._fail(op, index, f"array index {segment!r} is out of range")
            return current[position]
        raise self._fail(op, index, f"cannot traverse into a {type(current).__name__} at {segment!r}")

    def _remove(self, document: Any, op: StructuredOp, index: int) -> Any:
        current = document
        for segment in op.path[:-1]:
            if isinstance(current, dict) and segment in current:
                current = current[segment]
            elif isinstance(current, list) and _array_index(segment, len(current), allow_end=False) is not None:
                current = current[int(segment)]
            else:
                return self._missing(document, op, index)

        last = op.path[-1]
        if isinstance(current, list):
            position = _array_index(last, len(current), allow_end=False)
            if position is None:
                return self._missing(document, op, index)
            del current[position]
        elif isinstance(current, dict) and last in current:
            del current[last]
        else:
            return self._missing(document, op, index)
        return document

    def _missing(self, document: Any, op: StructuredOp, index: int) -> Any:
        if self.lenient:
            logger.info("structured_remove_missing", path=op.pointer)
            return document
        raise self._fail(op, index, "path does not exist")


def _is_op_list(operations: Any) -> bool:
    return isinstance(operations, (list, tuple)) and all(isinstance(op, StructuredOp) for op in operations) and bool(operations)
