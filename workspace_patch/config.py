"""Engine configuration.

:class:`PatchEngineConfig` is built once per invocation and handed to the
orchestrator explicitly. The allow-list comes from a YAML document:

.. code-block:: yaml

    allowedPaths:
      - src/
      - docs/README.md
    externalAllowedPaths:
      - /srv/shared/notes

Precedence: a per-agent document wins over the global one; only the first
existing file is read.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, List, Literal, Mapping, Optional, Sequence, Tuple, Union

import yaml

from .exceptions import InputError
from .logging import get_logger
from .sandbox import AllowlistEntry, PathSandbox, canonicalize, is_within

logger = get_logger(__name__)

MAX_PATCH_SIZE_BYTES: int = 1 * 1024 * 1024  # 1 MB
MAX_FILE_SIZE_BYTES: int = 10 * 1024 * 1024  # 10 MB
PREVIEW_CHARS: int = 2000

ConfigSource = Literal["agent", "global"]


@dataclass(frozen=True)
class PatchEngineConfig:
    """Settings for one patch engine invocation.

    Attributes:
        workspace_root: Directory every relative target is confined to.
        allowlist: Resolved allow-list entries; empty means workspace-only.
        lenient: Clamp out-of-range hunks and ignore removal of missing
            structured paths instead of failing.
        verify_context: Check context/deleted lines before splicing a hunk.
        detect_concurrent_writes: Refuse to overwrite a file whose mtime
            changed since it was read.
        max_patch_bytes: Largest accepted patch text.
        max_file_bytes: Largest file that may be read or produced.
        preview_chars: Length of the structured-document preview.
    """

    workspace_root: Path
    allowlist: Tuple[AllowlistEntry, ...] = ()
    lenient: bool = False
    verify_context: bool = True
    detect_concurrent_writes: bool = True
    max_patch_bytes: int = MAX_PATCH_SIZE_BYTES
    max_file_bytes: int = MAX_FILE_SIZE_BYTES
    preview_chars: int = PREVIEW_CHARS

    def __post_init__(self) -> None:
        object.__setattr__(self, "workspace_root", canonicalize(Path(self.workspace_root)))
        object.__setattr__(self, "allowlist", tuple(self.allowlist))

    @classmethod
    def from_files(
        cls,
        workspace_root: Union[str, Path],
        *,
        agent_config: Optional[Union[str, Path]] = None,
        global_config: Optional[Union[str, Path]] = None,
        **overrides: Any,
    ) -> "PatchEngineConfig":
        """Build a config whose allow-list is loaded from YAML documents."""
        allowlist = load_allowlist(workspace_root, agent_config=agent_config, global_config=global_config)
        return cls(workspace_root=Path(workspace_root), allowlist=allowlist, **overrides)

    def with_overrides(self, **changes: Any) -> "PatchEngineConfig":
        return replace(self, **changes)

    def sandbox(self) -> PathSandbox:
        return PathSandbox(self.workspace_root, self.allowlist)


# ---------------------------------------------------------------------------
# Allow-list documents
# ---------------------------------------------------------------------------

def _string_list(document: Mapping[str, Any], key: str, source: Path) -> List[str]:
    value = document.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InputError(f"'{key}' must be a list of path strings", path=str(source))
    return [item.strip() for item in value if item.strip()]


def read_allowlist_document(path: Path) -> Tuple[List[str], List[str]]:
    """Return ``(allowedPaths, externalAllowedPaths)`` from a YAML file."""

    try:
        with path.open("r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle)
    except yaml.YAMLError as e:
        raise InputError(f"Invalid allow-list configuration: {e}", path=str(path)) from e

    if document is None:
        return [], []
    if not isinstance(document, Mapping):
        raise InputError("Allow-list configuration must be a mapping", path=str(path))

    return (
        _string_list(document, "allowedPaths", path),
        _string_list(document, "externalAllowedPaths", path),
    )


def _resolve_entry(raw: str, root: Path) -> Path:
    candidate = Path(raw)
    if not candidate.is_absolute():
        candidate = root / candidate
    return canonicalize(candidate)


def resolve_allowlist(
    allowed: Sequence[str],
    external: Sequence[str],
    workspace_root: Union[str, Path],
    *,
    source: ConfigSource = "global",
) -> Tuple[AllowlistEntry, ...]:
    """Turn raw allow-list strings into resolved entries.

    - ``externalAllowedPaths`` entries are always included.
    - ``allowedPaths`` entries inside the workspace are included.
    - Absolute ``allowedPaths`` entries outside the workspace are included
      only when also listed as external, or when they come from the
      per-agent document.
    """

    root = canonicalize(Path(workspace_root))
    external_paths = [_resolve_entry(raw, root) for raw in external]
    resolved: List[Path] = list(external_paths)

    for raw in allowed:
        candidate = _resolve_entry(raw, root)
        if is_within(candidate, root):
            resolved.append(candidate)
        elif Path(raw).is_absolute() and (candidate in external_paths or source == "agent"):
            resolved.append(candidate)
        else:
            logger.warning("allowlist_entry_ignored", entry=raw, source=source)

    entries: List[AllowlistEntry] = []
    for path in resolved:
        entry = AllowlistEntry(path=path, is_dir=path.is_dir())
        if entry not in entries:
            entries.append(entry)
    return tuple(entries)


def load_allowlist(
    workspace_root: Union[str, Path],
    *,
    agent_config: Optional[Union[str, Path]] = None,
    global_config: Optional[Union[str, Path]] = None,
) -> Tuple[AllowlistEntry, ...]:
    """Load the allow-list from the first existing configuration document."""

    candidates: List[Tuple[ConfigSource, Optional[Union[str, Path]]]] = [
        ("agent", agent_config),
        ("global", global_config),
    ]
    for source, raw_path in candidates:
        if raw_path is None:
            continue
        path = Path(raw_path).expanduser()
        if not path.is_file():
            continue
        allowed, external = read_allowlist_document(path)
        entries = resolve_allowlist(allowed, external, workspace_root, source=source)
        logger.debug("allowlist_loaded", source=source, config=str(path), entries=len(entries))
        return entries
    return ()
