"""
Workflow runner.

Drives the ordered step list from a start position to completion or to a
prompt halt. Every call to run() builds its scope and environment from
scratch: the only state crossing invocations is what the resume token
carries, so a runner can sit behind a stateless request/response boundary.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from ..definition import OutputPolicy, WorkflowDefinition
from ..exceptions import ResumeTokenError, WorkflowChangedError
from ..exec.step_executor import ProcessRunner, StepExecutor
from ..loader import load_workflow
from ..resume import encode_resume_token
from ..state import ResumePayload, StepResult
from ..variables.env import compose_env
from ..variables.substitution import VariableSubstitutor

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_NEEDS_LLM = "needs_llm"


@dataclass
class HaltDescriptor:
    """What the host needs to produce a completion and resume."""
    prompt: str
    resume_token: str
    system: Optional[str] = None
    context: Optional[str] = None
    step_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": "llm_request", "prompt": self.prompt}
        if self.system is not None:
            result["system"] = self.system
        if self.context is not None:
            result["context"] = self.context
        result["resumeToken"] = self.resume_token
        return result


@dataclass
class RunResult:
    """Outcome of one invocation."""
    status: str
    output: List[Any] = field(default_factory=list)
    requires_llm: Optional[HaltDescriptor] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"status": self.status, "output": self.output}
        if self.requires_llm is not None:
            result["requiresLlm"] = self.requires_llm.to_dict()
        return result


class WorkflowRunner:
    """
    Sequential step state machine.
    Entry is either a fresh start or a resume payload plus the completion for
    the halted prompt step.
    """

    def __init__(
        self,
        definition: WorkflowDefinition,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Union[str, Path]] = None,
        args: Optional[Mapping[str, Any]] = None,
        process_runner: Optional[ProcessRunner] = None,
        output_policy: Optional[Union[str, OutputPolicy]] = None,
    ):
        """
        Initialize workflow runner.

        Args:
            definition: Validated workflow definition
            env: Parent environment snapshot (default: copy of os.environ)
            cwd: Caller working directory, used when the workflow sets no cwd
            args: Caller-supplied argument values, layered over defaults
            process_runner: Spawning primitive for process steps
            output_policy: Overrides the workflow's output policy
        """
        self.definition = definition
        self.parent_env = MappingProxyType(dict(os.environ if env is None else env))
        self.base_cwd = Path(cwd).resolve() if cwd is not None else Path.cwd()
        self.caller_args = dict(args or {})
        self.output_policy = OutputPolicy(output_policy) if output_policy is not None else None

        base_dir = definition.base_dir or self.base_cwd
        self.step_executor = StepExecutor(base_dir, default_cwd=self.base_cwd, process_runner=process_runner)
        self.variable_substitutor = VariableSubstitutor()

    def run(self, resume: Optional[ResumePayload] = None, llm_response: Optional[str] = None) -> RunResult:
        """
        Execute the workflow from the start or from a resume payload.

        Args:
            resume: Decoded resume token of a halted run
            llm_response: Completion text for the halted prompt step

        Returns:
            RunResult with status ok or needs_llm

        Raises:
            StepExecutionError: A process step failed; no partial output
            ResumeTokenError: The payload does not fit this workflow
        """
        steps = self.definition.steps

        if resume is not None:
            self._check_resume(resume)
            start = resume.resume_at
            results: List[StepResult] = list(resume.steps)
            caller_args = dict(resume.args)
            logger.info(f"Resuming workflow '{self.definition.name}' at step '{steps[start].id}'")
        else:
            start = 0
            results = []
            caller_args = dict(self.caller_args)
            if llm_response is not None:
                logger.warning("LLM response supplied without a resume token; ignoring it")
            logger.info(f"Starting workflow '{self.definition.name}' ({len(steps)} steps)")

        args = self.definition.arg_defaults()
        args.update(caller_args)

        for index in range(start, len(steps)):
            step = steps[index]
            outputs = {result.id: result.scope_entry() for result in results}
            env = compose_env(self.parent_env, self.definition.env, step.env, args, outputs)
            variables = self.variable_substitutor.build_variables(args=args, env=env, step_outputs=outputs)

            if not step.is_prompt:
                cwd_template = step.cwd if step.cwd is not None else self.definition.cwd
                results.append(self.step_executor.execute_command(step, variables, env, cwd_template))
                continue

            if resume is not None and index == resume.resume_at and llm_response is not None:
                results.append(self.step_executor.complete_prompt(step, llm_response))
                continue

            return self._halt(index, variables, results, caller_args)

        logger.info(f"Workflow '{self.definition.name}' completed")
        return RunResult(status=STATUS_OK, output=self.collect_output(results))

    def _halt(
        self,
        index: int,
        variables: Mapping[str, Any],
        results: List[StepResult],
        caller_args: Dict[str, Any],
    ) -> RunResult:
        step = self.definition.steps[index]
        request = self.step_executor.render_prompt(step, variables)

        source = self.definition.source_path
        payload = ResumePayload(
            file_path=str(source) if source is not None else None,
            workflow_checksum=self.definition.checksum,
            resume_at=index,
            args=caller_args,
            steps=list(results),
        )

        halt = HaltDescriptor(
            prompt=request.prompt,
            system=request.system,
            context=request.context,
            resume_token=encode_resume_token(payload),
            step_id=step.id,
        )
        return RunResult(status=STATUS_NEEDS_LLM, requires_llm=halt)

    def _check_resume(self, payload: ResumePayload) -> None:
        """Make sure a payload can continue this workflow."""
        if (payload.workflow_checksum and self.definition.checksum
                and payload.workflow_checksum != self.definition.checksum):
            raise WorkflowChangedError(
                f"Workflow '{self.definition.name}' has been modified since the resume token was issued"
            )

        steps = self.definition.steps
        if payload.resume_at >= len(steps):
            raise ResumeTokenError(
                f"Resume position {payload.resume_at} is out of range for workflow "
                f"'{self.definition.name}' ({len(steps)} steps)"
            )

        step = steps[payload.resume_at]
        if not step.is_prompt:
            raise ResumeTokenError(f"Resume position points at step '{step.id}', which is not a prompt step")

        recorded = [result.id for result in payload.steps]
        expected = list(self.definition.step_ids()[:payload.resume_at])
        if recorded != expected:
            raise ResumeTokenError(
                f"Resume token records steps {recorded} but workflow expects {expected} before '{step.id}'"
            )

    def collect_output(self, results: List[StepResult]) -> List[Any]:
        """Apply the output policy to the completed step results."""
        policy = self.output_policy or self.definition.output or OutputPolicy.LAST

        if policy is OutputPolicy.ALL:
            return [result.output_value() for result in results]

        if policy is OutputPolicy.MARKED:
            marked = {step.id for step in self.definition.steps if step.output}
            return [result.output_value() for result in results if result.id in marked]

        if not results:
            return []
        value = results[-1].output_value()
        if isinstance(value, list):
            return list(value)
        return [value]


def run_workflow_file(
    file_path: Optional[Union[str, Path]] = None,
    *,
    resume: Optional[ResumePayload] = None,
    llm_response: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    cwd: Optional[Union[str, Path]] = None,
    args: Optional[Mapping[str, Any]] = None,
    output_policy: Optional[Union[str, OutputPolicy]] = None,
    process_runner: Optional[ProcessRunner] = None,
) -> RunResult:
    """
    Load a workflow file and run it, or reconstruct and resume it from a payload.

    On resume the workflow file recorded in the payload is reloaded; passing
    file_path as well is allowed only when it names the same file.
    """
    if resume is not None:
        if not resume.file_path:
            raise ResumeTokenError("Resume token does not reference a workflow file")
        path = Path(resume.file_path)
        if file_path is not None and Path(file_path).resolve() != path.resolve():
            raise ResumeTokenError(f"Resume token was issued for '{path}', not '{file_path}'")
    elif file_path is None:
        raise ValueError("file_path is required unless resuming")
    else:
        path = Path(file_path)

    definition = load_workflow(path)
    runner = WorkflowRunner(
        definition,
        env=env,
        cwd=cwd,
        args=args,
        process_runner=process_runner,
        output_policy=output_policy,
    )
    return runner.run(resume=resume, llm_response=llm_response)
