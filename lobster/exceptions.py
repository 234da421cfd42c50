"""Lobster exceptions."""

from typing import List, Optional
from dataclasses import dataclass


@dataclass
class ValidationError:
    """Single validation error."""
    message: str
    path: str = ""


class LobsterError(Exception):
    """Base class for all engine errors surfaced to callers."""

    exit_code = 1
    error_type = "error"

    def to_dict(self) -> dict:
        return {"type": self.error_type, "message": str(self)}


class WorkflowValidationError(LobsterError):
    """Raised when workflow validation fails.

    The loader collects every shape problem before raising, so the CLI can
    report them together and map to the validation exit code.
    """

    exit_code = 2
    error_type = "validation_error"

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors

        messages = []
        for error in errors:
            messages.append(f"Validation error: {error.message}")

        super().__init__("\n".join(messages))

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["errors"] = [{"message": e.message, "path": e.path} for e in self.errors]
        return result


class StepExecutionError(LobsterError):
    """Raised when a process step exits nonzero or cannot be spawned."""

    error_type = "execution_error"

    def __init__(self, step_id: str, exit_code: Optional[int], stderr: str = "", message: Optional[str] = None):
        self.step_id = step_id
        self.exit_code_value = exit_code
        self.stderr = stderr

        if message is None:
            message = f"Workflow step '{step_id}' failed with exit code {exit_code}"
            tail = stderr.strip()
            if tail:
                message = f"{message}: {tail[-2000:]}"
        super().__init__(message)

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["step_id"] = self.step_id
        if self.exit_code_value is not None:
            result["exit_code"] = self.exit_code_value
        return result


class ResumeTokenError(LobsterError):
    """The continuation handed back by the caller cannot be used."""

    exit_code = 3
    error_type = "resume_token_error"


class ResumeTokenDecodeError(ResumeTokenError):
    """Malformed or tampered resume token."""

    error_type = "resume_token_decode_error"


class WorkflowChangedError(ResumeTokenError):
    """The workflow file changed after the token was issued."""

    error_type = "workflow_changed"


class UsageError(LobsterError):
    """Bad command line usage."""

    exit_code = 2
    error_type = "usage_error"
