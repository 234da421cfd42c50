"""Immutable workflow definition types produced by the loader."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple


class OutputPolicy(str, Enum):
    """Which step outputs surface in a successful run result."""
    LAST = "last"
    ALL = "all"
    MARKED = "marked"


class StepKind(str, Enum):
    COMMAND = "command"
    PROMPT = "prompt"


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ArgSpec:
    """Declared workflow argument."""
    name: str
    default: Any = None
    description: Optional[str] = None


@dataclass(frozen=True)
class StepSpec:
    """A single workflow step: either a process invocation or a prompt halt."""
    id: str
    command: Optional[str] = None
    prompt: Optional[str] = None
    system: Optional[str] = None
    stdin: Optional[str] = None
    env: Mapping[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    output: bool = False
    description: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'env', _frozen(self.env))

    @property
    def kind(self) -> StepKind:
        return StepKind.PROMPT if self.prompt is not None else StepKind.COMMAND

    @property
    def is_prompt(self) -> bool:
        return self.kind is StepKind.PROMPT


@dataclass(frozen=True)
class WorkflowDefinition:
    """Validated workflow. Read-only once loaded."""
    name: str
    steps: Tuple[StepSpec, ...]
    args: Mapping[str, ArgSpec] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    output: Optional[OutputPolicy] = None
    description: Optional[str] = None
    source_path: Optional[Path] = None
    checksum: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'steps', tuple(self.steps))
        object.__setattr__(self, 'args', _frozen(self.args))
        object.__setattr__(self, 'env', _frozen(self.env))

    @property
    def base_dir(self) -> Optional[Path]:
        """Directory relative paths in the workflow resolve against."""
        if self.source_path is None:
            return None
        return self.source_path.parent

    def arg_defaults(self) -> dict:
        return {name: spec.default for name, spec in self.args.items()}

    def step_ids(self) -> Tuple[str, ...]:
        return tuple(step.id for step in self.steps)
