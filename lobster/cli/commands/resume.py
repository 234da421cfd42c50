"""Resume command implementation."""

import argparse
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from lobster.cli.output import emit_result, report_error
from lobster.cli.parser import CliArgumentParser
from lobster.exceptions import LobsterError, UsageError
from lobster.resume import decode_resume_token
from lobster.workflow.runner import run_workflow_file


logger = logging.getLogger(__name__)


@dataclass
class ResumeArgs:
    """Validated resume flags."""
    token: str
    llm_response: str


def add_resume_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--token',
        type=str,
        help='Resume token returned by a halted run'
    )
    parser.add_argument(
        '--llm-response',
        dest='llm_response',
        type=str,
        help='Completion text for the halted prompt step'
    )


def validate_resume_args(token: Optional[str], llm_response: Optional[str]) -> ResumeArgs:
    """Check resume flags; missing or blank values are usage errors."""
    if token is None or not token.strip():
        raise UsageError("--token requires a value")
    if llm_response is None:
        raise UsageError("--llm-response requires a value")
    if not llm_response.strip():
        raise UsageError("--llm-response cannot be empty")
    try:
        llm_response.encode('utf-8')
    except UnicodeEncodeError as e:
        raise UsageError("--llm-response must be valid UTF-8 text") from e
    return ResumeArgs(token=token.strip(), llm_response=llm_response)


def parse_resume_args(argv: List[str]) -> ResumeArgs:
    """Parse `--token <v> --llm-response <v>` (or `--llm-response=<v>`)."""
    parser = CliArgumentParser(prog='lobster resume', add_help=False)
    add_resume_arguments(parser)
    parsed = parser.parse_args(argv)
    return validate_resume_args(parsed.token, parsed.llm_response)


def resume_workflow(args: argparse.Namespace) -> int:
    """Resume a halted workflow with a host-supplied completion.

    Returns:
        Exit code (0 for ok or a further halt, non-zero for failure)
    """
    try:
        resume_args = validate_resume_args(args.token, args.llm_response)
        payload = decode_resume_token(resume_args.token)
        logger.info(f"Resuming {payload.file_path} at step index {payload.resume_at}")

        result = run_workflow_file(
            resume=payload,
            llm_response=resume_args.llm_response,
            env=dict(os.environ),
            cwd=Path.cwd(),
        )
    except LobsterError as e:
        return report_error(e)

    return emit_result(result)
