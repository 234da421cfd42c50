"""Run command implementation."""

import json
import logging
import os
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict

from lobster.cli.output import emit, emit_result, report_error
from lobster.exceptions import LobsterError, UsageError
from lobster.loader import load_workflow
from lobster.workflow.runner import run_workflow_file


logger = logging.getLogger(__name__)


def parse_args_values(args: Namespace) -> Dict[str, Any]:
    """Parse workflow argument values from --args-json and --arg KEY=VALUE."""
    values: Dict[str, Any] = {}

    if args.args_json:
        try:
            parsed = json.loads(args.args_json)
        except json.JSONDecodeError as e:
            raise UsageError(f"--args-json is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise UsageError(f"--args-json must be a JSON object, got {type(parsed).__name__}")
        values.update(parsed)

    if args.arg:
        for item in args.arg:
            if '=' not in item:
                raise UsageError(f"Invalid --arg format: {item}. Expected KEY=VALUE")
            key, value = item.split('=', 1)
            if not key:
                raise UsageError(f"Invalid --arg format: {item}. Expected KEY=VALUE")
            values[key] = value

    return values


def run_workflow(args: Namespace) -> int:
    """
    Run a workflow file from the start.

    Returns:
        Exit code (0 for ok or a halt awaiting an LLM completion)
    """
    workflow_path = Path(args.workflow).resolve()

    try:
        if args.dry_run:
            definition = load_workflow(workflow_path)
            logger.info("[DRY RUN] Workflow validation successful")
            emit({
                "status": "valid",
                "name": definition.name,
                "steps": [{"id": step.id, "kind": step.kind.value} for step in definition.steps],
            })
            return 0

        logger.info(f"Loading workflow: {workflow_path}")
        result = run_workflow_file(
            workflow_path,
            env=dict(os.environ),
            cwd=Path.cwd(),
            args=parse_args_values(args),
            output_policy=args.output_policy,
        )
    except LobsterError as e:
        return report_error(e)

    return emit_result(result)
