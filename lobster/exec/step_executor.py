"""
Step executor module for running one workflow step.
Process steps spawn a shell command and capture its output; prompt steps
render their templates and halt for a host-supplied completion.
"""

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .output_capture import capture, parse_json_output
from ..definition import StepSpec
from ..exceptions import StepExecutionError
from ..state import StepResult
from ..variables.substitution import VariableSubstitutor

logger = logging.getLogger(__name__)


@dataclass
class ProcessOutput:
    """What the spawning primitive hands back."""
    stdout: Union[bytes, str]
    stderr: Union[bytes, str]
    exit_code: int


ProcessRunner = Callable[[str, Path, Dict[str, str], Optional[str]], ProcessOutput]


def run_process(
    command: str,
    cwd: Path,
    env: Dict[str, str],
    stdin: Optional[str] = None,
) -> ProcessOutput:
    """
    Run a command line through the system shell and wait for it to exit.

    No timeout is applied; a hung child hangs the caller.
    """
    kwargs: Dict[str, Any] = {}
    if stdin is not None:
        # surrogateescape restores bytes that arrived undecodable through argv
        kwargs['input'] = stdin.encode('utf-8', errors='surrogateescape')
    else:
        kwargs['stdin'] = subprocess.DEVNULL

    result = subprocess.run(
        command,
        shell=True,
        cwd=str(cwd),
        env=env,
        capture_output=True,
        **kwargs,
    )
    return ProcessOutput(stdout=result.stdout, stderr=result.stderr, exit_code=result.returncode)


@dataclass
class PromptRequest:
    """Rendered prompt step awaiting a completion from the host."""
    step_id: str
    prompt: str
    system: Optional[str] = None
    context: Optional[str] = None


class StepExecutor:
    """
    Executes workflow steps.
    Handles template rendering, working directory resolution and process
    spawning; the caller supplies the variable scope and composed env.
    """

    def __init__(
        self,
        base_dir: Path,
        default_cwd: Optional[Path] = None,
        process_runner: Optional[ProcessRunner] = None,
    ):
        """
        Initialize step executor.

        Args:
            base_dir: Directory relative cwd values resolve against (the
                workflow file's own directory)
            default_cwd: Working directory when neither step nor workflow
                sets one (default: base_dir)
            process_runner: Spawning primitive (default: run_process)
        """
        self.base_dir = base_dir
        self.default_cwd = default_cwd or base_dir
        self.process_runner = process_runner or run_process
        self.substitutor = VariableSubstitutor()

    def resolve_cwd(self, cwd_template: Optional[str], variables: Mapping[str, Any]) -> Path:
        """Render a cwd template; relative results are anchored at base_dir."""
        if cwd_template is None:
            return self.default_cwd

        rendered = self.substitutor.substitute(cwd_template, variables)
        if not rendered:
            return self.default_cwd

        path = Path(rendered).expanduser()
        if not path.is_absolute():
            path = self.base_dir / path
        return path

    def execute_command(
        self,
        step: StepSpec,
        variables: Mapping[str, Any],
        env: Dict[str, str],
        cwd_template: Optional[str] = None,
    ) -> StepResult:
        """
        Execute a process step.

        Args:
            step: Step definition
            variables: Variable scope for template rendering
            env: Composed environment for the child process
            cwd_template: Effective cwd template (step cwd or workflow cwd)

        Returns:
            StepResult with captured output

        Raises:
            StepExecutionError: If the process cannot be started or exits nonzero
        """
        command = self.substitutor.substitute(step.command, variables)
        stdin = self.substitutor.substitute_optional(step.stdin, variables)
        working_dir = self.resolve_cwd(cwd_template, variables)

        logger.info(f"Running step '{step.id}'")
        logger.debug(f"Step '{step.id}' command: {command} (cwd: {working_dir})")

        start_time = time.time()
        try:
            process = self.process_runner(command, working_dir, env, stdin)
        except OSError as e:
            raise StepExecutionError(
                step.id,
                None,
                message=f"Workflow step '{step.id}' could not be started: {e}",
            ) from e
        duration_ms = int((time.time() - start_time) * 1000)

        captured = capture(process.stdout, process.stderr, process.exit_code)

        if captured.exit_code != 0:
            logger.error(f"Step '{step.id}' failed with exit code {captured.exit_code} after {duration_ms} ms")
            raise StepExecutionError(step.id, captured.exit_code, captured.stderr)

        logger.info(f"Step '{step.id}' completed in {duration_ms} ms")
        return StepResult(
            id=step.id,
            stdout=captured.stdout,
            stderr=captured.stderr,
            exit_code=captured.exit_code,
            json=captured.json_data,
            kind='command',
        )

    def render_prompt(self, step: StepSpec, variables: Mapping[str, Any]) -> PromptRequest:
        """Render a prompt step's templates. No model is invoked here."""
        request = PromptRequest(
            step_id=step.id,
            prompt=self.substitutor.substitute(step.prompt, variables),
            system=self.substitutor.substitute_optional(step.system, variables),
            context=self.substitutor.substitute_optional(step.stdin, variables),
        )
        logger.info(f"Step '{step.id}' halted awaiting an LLM completion")
        return request

    def complete_prompt(self, step: StepSpec, completion: str) -> StepResult:
        """Record a host-supplied completion verbatim as the step's output."""
        logger.info(f"Step '{step.id}' completed with a supplied LLM response ({len(completion)} chars)")
        return StepResult(
            id=step.id,
            stdout=completion,
            stderr="",
            exit_code=0,
            json=parse_json_output(completion),
            kind='prompt',
        )
