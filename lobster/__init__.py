"""Lobster: file-defined workflows that pause for host-supplied LLM completions."""

from lobster.definition import ArgSpec, OutputPolicy, StepSpec, WorkflowDefinition
from lobster.exceptions import (
    LobsterError,
    ResumeTokenDecodeError,
    ResumeTokenError,
    StepExecutionError,
    UsageError,
    WorkflowChangedError,
    WorkflowValidationError,
)
from lobster.loader import WorkflowLoader, load_workflow
from lobster.resume import decode_resume_token, encode_resume_token
from lobster.state import ResumePayload, StepResult
from lobster.workflow import HaltDescriptor, RunResult, WorkflowRunner, run_workflow_file

__version__ = "0.1.0"

__all__ = [
    'ArgSpec',
    'OutputPolicy',
    'StepSpec',
    'WorkflowDefinition',
    'LobsterError',
    'ResumeTokenDecodeError',
    'ResumeTokenError',
    'StepExecutionError',
    'UsageError',
    'WorkflowChangedError',
    'WorkflowValidationError',
    'WorkflowLoader',
    'load_workflow',
    'decode_resume_token',
    'encode_resume_token',
    'ResumePayload',
    'StepResult',
    'HaltDescriptor',
    'RunResult',
    'WorkflowRunner',
    'run_workflow_file',
]
