"""Command line entry point.

``workspace-patch run`` is the subprocess transport used by agent hosts: it
reads one JSON envelope from stdin and prints one JSON response line.

    echo '{"action": "applyPatch", "params": {"patch": "..."}}' | workspace-patch run

``workspace-patch apply`` applies a patch file for interactive use.
"""
from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import typer
from dotenv import load_dotenv

from .config import PatchEngineConfig
from .exceptions import InputError, PatchEngineError
from .logging import LogConfig, configure_logging, get_logger
from .orchestrator import PatchOrchestrator, error_response

APP_HELP = "Apply unified diffs and structured patches inside a workspace."
APPLY_PATCH_ACTION = "applyPatch"

logger = get_logger(__name__)

app = typer.Typer(help=APP_HELP, no_args_is_help=True)


@app.callback()
def main() -> None:
    """Load ``.env`` and configure logging before any command runs."""
    load_dotenv()
    configure_logging(LogConfig.from_env())


def _emit(response: Mapping[str, Any]) -> None:
    typer.echo(json.dumps(response, ensure_ascii=False))
    if not response.get("success"):
        raise typer.Exit(code=1)


def _build_orchestrator(
    workspace: Path,
    agent_config: Optional[Path],
    global_config: Optional[Path],
    agent_id: Optional[str],
) -> PatchOrchestrator:
    config = PatchEngineConfig.from_files(
        workspace,
        agent_config=agent_config,
        global_config=global_config,
    )
    return PatchOrchestrator(config, agent_id=agent_id)


def _read_envelope(raw: str) -> Dict[str, Any]:
    try:
        envelope = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InputError(f"Invalid request envelope: {e}") from e
    if not isinstance(envelope, dict):
        raise InputError("Request envelope must be a JSON object")

    action = envelope.get("action")
    if action != APPLY_PATCH_ACTION:
        raise InputError(f"Unknown action: {action}", hint=f"Supported: {APPLY_PATCH_ACTION}")

    for key in ("params", "context"):
        if not isinstance(envelope.get(key) or {}, dict):
            raise InputError(f"Envelope field '{key}' must be an object")
    return envelope


AGENT_CONFIG_OPTION = typer.Option(
    None,
    "--agent-config",
    envvar="WORKSPACE_PATCH_AGENT_CONFIG",
    help="Per-agent allow-list YAML (takes precedence over the global one).",
)
GLOBAL_CONFIG_OPTION = typer.Option(
    None,
    "--global-config",
    envvar="WORKSPACE_PATCH_GLOBAL_CONFIG",
    help="Global allow-list YAML.",
)


@app.command()
def run(
    workspace: Optional[Path] = typer.Option(
        None,
        "--workspace",
        "-w",
        help="Workspace root. Defaults to context.cwd, then the current directory.",
    ),
    agent_config: Optional[Path] = AGENT_CONFIG_OPTION,
    global_config: Optional[Path] = GLOBAL_CONFIG_OPTION,
) -> None:
    """Read one request envelope from stdin and print the response envelope."""

    try:
        envelope = _read_envelope(sys.stdin.read())
        context = envelope.get("context") or {}
        root = workspace or Path(context.get("cwd") or os.getcwd())
        orchestrator = _build_orchestrator(root, agent_config, global_config, context.get("agentId"))
    except PatchEngineError as e:
        logger.warning("envelope_rejected", stage=e.stage, error=e.message)
        _emit(error_response(e))
        return

    _emit(orchestrator.handle(envelope.get("params") or {}, request_id=context.get("requestId")))


@app.command()
def apply(
    patch_file: str = typer.Argument(..., help="Patch file to apply, or '-' to read stdin."),
    patch_format: str = typer.Option("unified-diff", "--format", "-f", help="unified-diff or structured."),
    target_file: Optional[str] = typer.Option(None, "--target-file", "-t", help="Target of a structured patch."),
    commit: bool = typer.Option(False, "--commit", help="Write changes; without it only a preview is computed."),
    workspace: Path = typer.Option(Path("."), "--workspace", "-w", help="Workspace root."),
    agent_config: Optional[Path] = AGENT_CONFIG_OPTION,
    global_config: Optional[Path] = GLOBAL_CONFIG_OPTION,
) -> None:
    """Apply a patch file inside the workspace."""

    try:
        if patch_file == "-":
            patch_text = sys.stdin.read()
        else:
            patch_text = Path(patch_file).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        _emit(error_response(InputError(f"Cannot read patch file: {e}", path=patch_file)))
        return

    params: Dict[str, Any] = {"patch": patch_text, "format": patch_format, "commit": commit}
    if target_file:
        params["targetFile"] = target_file

    try:
        orchestrator = _build_orchestrator(workspace, agent_config, global_config, agent_id=None)
    except PatchEngineError as e:
        _emit(error_response(e, request_format=patch_format))
        return
    _emit(orchestrator.handle(params))


if __name__ == "__main__":
    app()
