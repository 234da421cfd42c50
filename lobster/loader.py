"""Workflow loader and strict shape validation.

Validation runs as a single gate before anything executes: every problem is
collected and reported together in one WorkflowValidationError.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import yaml

from lobster.definition import ArgSpec, OutputPolicy, StepSpec, WorkflowDefinition
from lobster.exceptions import ValidationError, WorkflowValidationError

logger = logging.getLogger(__name__)


class PreservingLoader(yaml.SafeLoader):
    """Custom YAML loader that preserves strings like 'on' instead of converting to bool."""
    pass


# Remove the implicit resolvers that turn 'on', 'off', 'yes', 'no' into booleans
PreservingLoader.yaml_implicit_resolvers = dict(PreservingLoader.yaml_implicit_resolvers)
for _first in ('o', 'O', 'y', 'Y', 'n', 'N'):
    if _first in PreservingLoader.yaml_implicit_resolvers:
        PreservingLoader.yaml_implicit_resolvers[_first] = [
            (tag, regexp) for tag, regexp in PreservingLoader.yaml_implicit_resolvers[_first]
            if tag != 'tag:yaml.org,2002:bool'
        ]


def calculate_checksum(file_path: Path) -> str:
    """Calculate SHA256 checksum of a file."""
    sha256 = hashlib.sha256()
    with open(file_path, 'rb') as f:
        for chunk in iter(lambda: f.read(4096), b''):
            sha256.update(chunk)
    return f"sha256:{sha256.hexdigest()}"


class WorkflowLoader:
    """Loads workflow files (YAML or JSON) and validates their shape."""

    TOP_LEVEL_FIELDS = {'name', 'description', 'args', 'env', 'cwd', 'output', 'steps'}
    STEP_FIELDS = {'id', 'command', 'prompt', 'system', 'stdin', 'env', 'cwd', 'output', 'description'}
    ARG_FIELDS = {'default', 'description'}

    def __init__(self):
        self.errors: List[ValidationError] = []

    def load(self, workflow_path: Union[str, Path]) -> WorkflowDefinition:
        """Load and validate a workflow file."""
        self.errors = []
        path = Path(workflow_path).resolve()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.load(f, Loader=PreservingLoader)
        except (OSError, yaml.YAMLError) as e:
            self._add_error(f"Failed to load workflow: {e}")
            self._raise_validation_errors()

        definition = self.load_data(data, source_path=path, checksum=calculate_checksum(path))
        logger.debug(f"Loaded workflow '{definition.name}' from {path} ({len(definition.steps)} steps)")
        return definition

    def load_data(
        self,
        data: Any,
        source_path: Optional[Path] = None,
        checksum: Optional[str] = None,
    ) -> WorkflowDefinition:
        """Validate an already-parsed workflow document and build the definition."""
        self.errors = []

        if data is None or not isinstance(data, dict):
            self._add_error("Workflow must be a YAML object/dictionary")
            self._raise_validation_errors()

        self._validate_top_level(data)
        steps = data.get('steps')
        if not steps:
            self._add_error("'steps' field is required and must not be empty")
        else:
            self._validate_steps(steps)

        if self.errors:
            self._raise_validation_errors()

        return self._build(data, source_path, checksum)

    def _validate_top_level(self, workflow: Dict[str, Any]):
        for key in workflow.keys():
            if key not in self.TOP_LEVEL_FIELDS:
                self._add_error(f"Unknown field '{key}'", path=str(key))

        name = workflow.get('name')
        if not name:
            self._add_error("'name' field is required", path='name')
        elif not isinstance(name, str):
            self._add_error(f"'name' must be a string, got {type(name).__name__}", path='name')

        if 'description' in workflow and not isinstance(workflow['description'], str):
            self._add_error("'description' must be a string", path='description')

        if 'args' in workflow:
            self._validate_args(workflow['args'])

        if 'env' in workflow:
            self._validate_env(workflow['env'], 'env')

        if 'cwd' in workflow and not isinstance(workflow['cwd'], str):
            self._add_error("'cwd' must be a string", path='cwd')

        if 'output' in workflow:
            valid = [p.value for p in OutputPolicy]
            if workflow['output'] not in valid:
                self._add_error(f"'output' must be one of {valid}", path='output')

    def _validate_args(self, args: Any):
        if not isinstance(args, dict):
            self._add_error("'args' must be a dictionary", path='args')
            return

        for name, spec in args.items():
            if not isinstance(name, str) or not name:
                self._add_error(f"Arg name must be a non-empty string, got {name!r}", path='args')
                continue
            if spec is None:
                continue
            if not isinstance(spec, dict):
                self._add_error(f"Arg '{name}' must be a dictionary", path=f"args.{name}")
                continue
            for key in spec.keys():
                if key not in self.ARG_FIELDS:
                    self._add_error(f"Arg '{name}': unknown field '{key}'", path=f"args.{name}")
            if 'description' in spec and not isinstance(spec['description'], str):
                self._add_error(f"Arg '{name}': description must be a string", path=f"args.{name}")

    def _validate_env(self, env: Any, context: str):
        if not isinstance(env, dict):
            self._add_error(f"{context} must be a dictionary", path=context)
            return

        for key, value in env.items():
            if not isinstance(key, str) or not key:
                self._add_error(f"{context}: variable name must be a non-empty string, got {key!r}", path=context)
            elif value is not None and not isinstance(value, (str, int, float, bool)):
                self._add_error(f"{context}: value of '{key}' must be a string", path=f"{context}.{key}")

    def _validate_steps(self, steps: Any):
        """Validate step definitions."""
        if not isinstance(steps, list):
            self._add_error("'steps' must be a list", path='steps')
            return

        step_ids = set()

        for i, step in enumerate(steps):
            if not isinstance(step, dict):
                self._add_error(f"Step {i} must be a dictionary", path=f"steps[{i}]")
                continue

            # Id is required and must be unique
            step_id = step.get('id')
            if not step_id:
                self._add_error(f"Step {i} missing required 'id' field", path=f"steps[{i}]")
                step_id = f"<step_{i}>"
            elif not isinstance(step_id, str):
                self._add_error(f"Step {i} id must be a string, got {type(step_id).__name__}", path=f"steps[{i}]")
                step_id = f"<step_{i}>"
            elif step_id in step_ids:
                self._add_error(f"Duplicate step id '{step_id}'", path=f"steps[{i}]")
            else:
                step_ids.add(step_id)

            for key in step.keys():
                if key not in self.STEP_FIELDS:
                    self._add_error(f"Step '{step_id}': unknown field '{key}'", path=f"steps[{i}]")

            has_command = step.get('command') is not None
            has_prompt = step.get('prompt') is not None

            if has_command and has_prompt:
                self._add_error(f"Step '{step_id}': cannot have both command and prompt", path=f"steps[{i}]")
            elif not has_command and not has_prompt:
                self._add_error(f"Step '{step_id}': requires a command or prompt", path=f"steps[{i}]")

            if step.get('system') is not None and not has_prompt:
                self._add_error(f"Step '{step_id}': system requires prompt", path=f"steps[{i}]")

            if step.get('cwd') is not None and has_prompt:
                self._add_error(f"Step '{step_id}': cwd is only allowed on command steps", path=f"steps[{i}]")

            for field in ('command', 'prompt', 'system', 'stdin', 'cwd', 'description'):
                value = step.get(field)
                if value is not None and not isinstance(value, str):
                    self._add_error(
                        f"Step '{step_id}': {field} must be a string, got {type(value).__name__}",
                        path=f"steps[{i}].{field}",
                    )

            if 'output' in step and not isinstance(step['output'], bool):
                self._add_error(f"Step '{step_id}': output must be a boolean", path=f"steps[{i}].output")

            if 'env' in step:
                self._validate_env(step['env'], f"Step '{step_id}' env")

    def _build(self, data: Dict[str, Any], source_path: Optional[Path], checksum: Optional[str]) -> WorkflowDefinition:
        args = {}
        for name, spec in (data.get('args') or {}).items():
            spec = spec or {}
            args[name] = ArgSpec(name=name, default=spec.get('default'), description=spec.get('description'))

        steps = []
        for raw in data['steps']:
            steps.append(StepSpec(
                id=raw['id'],
                command=raw.get('command'),
                prompt=raw.get('prompt'),
                system=raw.get('system'),
                stdin=raw.get('stdin'),
                env=_stringify_env(raw.get('env')),
                cwd=raw.get('cwd'),
                output=raw.get('output', False),
                description=raw.get('description'),
            ))

        output = data.get('output')
        return WorkflowDefinition(
            name=data['name'],
            steps=tuple(steps),
            args=args,
            env=_stringify_env(data.get('env')),
            cwd=data.get('cwd'),
            output=OutputPolicy(output) if output is not None else None,
            description=data.get('description'),
            source_path=source_path,
            checksum=checksum,
        )

    def _add_error(self, message: str, path: str = ""):
        """Add validation error."""
        self.errors.append(ValidationError(message, path))

    def _raise_validation_errors(self):
        """Raise WorkflowValidationError with accumulated errors."""
        raise WorkflowValidationError(self.errors)


def _stringify_env(env: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Env templates are text; YAML scalars like 8080 or true are kept in their textual form."""
    result = {}
    for key, value in (env or {}).items():
        if value is None:
            result[key] = ""
        elif isinstance(value, str):
            result[key] = value
        else:
            result[key] = json.dumps(value)
    return result


def load_workflow(workflow_path: Union[str, Path]) -> WorkflowDefinition:
    """Load and validate a workflow file."""
    return WorkflowLoader().load(workflow_path)
