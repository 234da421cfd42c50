"""Result and error envelopes written by the CLI."""

import json
import logging
import sys
from typing import Any, Dict

from lobster.exceptions import LobsterError
from lobster.workflow.runner import RunResult

logger = logging.getLogger(__name__)


def emit(envelope: Dict[str, Any]) -> None:
    """Write a JSON envelope to stdout."""
    sys.stdout.write(json.dumps(envelope, indent=2))
    sys.stdout.write("\n")
    sys.stdout.flush()


def emit_result(result: RunResult) -> int:
    emit(result.to_dict())
    return 0


def report_error(error: LobsterError) -> int:
    """Log the failure, write the error envelope and return the exit code."""
    for line in str(error).splitlines():
        logger.error(line)
    emit({"status": "error", "error": error.to_dict()})
    return error.exit_code
