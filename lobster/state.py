"""Run state carried between invocations.

The engine never persists any of this; a halted run's state travels to the
caller inside the resume token and comes back on the next invocation.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


RESUME_KIND_WORKFLOW_FILE = "workflow-file"
RESUME_PROTOCOL_VERSION = 1


@dataclass
class StepResult:
    """Recorded output of a completed step."""
    id: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    json: Optional[Any] = None
    kind: str = "command"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "json": self.json,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepResult":
        return cls(
            id=data["id"],
            stdout=data.get("stdout", ""),
            stderr=data.get("stderr", ""),
            exit_code=data.get("exit_code", 0),
            json=data.get("json"),
            kind=data.get("kind", "command"),
        )

    def scope_entry(self) -> Dict[str, Any]:
        """Fields visible to later steps as ${<id>.<field>}."""
        return {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "json": self.json,
        }

    def output_value(self) -> Any:
        """Value the step contributes to a run's output list.

        Parsed JSON when stdout was JSON, otherwise stdout without its final
        line terminator.
        """
        if self.json is not None:
            return self.json
        if self.stdout.endswith('\r\n'):
            return self.stdout[:-2]
        if self.stdout.endswith('\n'):
            return self.stdout[:-1]
        return self.stdout


@dataclass
class ResumePayload:
    """Minimal continuation state for a halted workflow."""
    file_path: Optional[str]
    resume_at: int
    steps: List[StepResult] = field(default_factory=list)
    args: Dict[str, Any] = field(default_factory=dict)
    workflow_checksum: Optional[str] = None
    kind: str = RESUME_KIND_WORKFLOW_FILE
    version: int = RESUME_PROTOCOL_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "version": self.version,
            "file_path": self.file_path,
            "workflow_checksum": self.workflow_checksum,
            "resume_at": self.resume_at,
            "args": self.args,
            "steps": [step.to_dict() for step in self.steps],
        }
