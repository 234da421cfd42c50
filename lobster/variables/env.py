"""
Environment composition for process steps.

Precedence, lowest to highest:
- the parent environment snapshot handed in by the caller
- workflow-level env, templates resolved against parent env and args
- step-level env, templates resolved against the workflow layer, args,
  completed step outputs and earlier entries of the same step env

Args are layered above the parent environment in every resolution scope, so
an env template naming an arg always sees the arg value.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from .substitution import resolve_template

logger = logging.getLogger(__name__)


def resolve_env_map(templates: Mapping[str, str], scope: Mapping[str, Any], chain: bool = False) -> Dict[str, str]:
    """Resolve every value of an env map. With chain, each resolved entry is visible to later ones."""
    resolved: Dict[str, str] = {}
    local_scope = dict(scope)
    for key, template in templates.items():
        value = resolve_template(template, local_scope)
        resolved[key] = value
        if chain:
            local_scope[key] = value
    return resolved


def compose_workflow_env(
    parent_env: Mapping[str, str],
    workflow_env: Mapping[str, str],
    args: Optional[Mapping[str, Any]] = None,
) -> Dict[str, str]:
    """Parent env overlaid with the resolved workflow-level env."""
    scope: Dict[str, Any] = dict(parent_env)
    scope.update(args or {})

    env = dict(parent_env)
    env.update(resolve_env_map(workflow_env, scope))
    return env


def compose_env(
    parent_env: Mapping[str, str],
    workflow_env: Optional[Mapping[str, str]] = None,
    step_env: Optional[Mapping[str, str]] = None,
    args: Optional[Mapping[str, Any]] = None,
    step_outputs: Optional[Mapping[str, Any]] = None,
) -> Dict[str, str]:
    """
    Compose the effective environment for one step.

    Args:
        parent_env: Immutable snapshot of the caller's environment
        workflow_env: Workflow-level env templates
        step_env: Step-level env templates
        args: Argument values
        step_outputs: Outputs of completed steps keyed by step id

    Returns:
        Environment mapping for the child process
    """
    env = compose_workflow_env(parent_env, workflow_env or {}, args)

    if step_env:
        scope: Dict[str, Any] = dict(env)
        scope.update(args or {})
        scope.update(step_outputs or {})
        env.update(resolve_env_map(step_env, scope, chain=True))

    logger.debug(
        f"Composed env: {len(workflow_env or {})} workflow and {len(step_env or {})} step entries "
        f"over {len(parent_env)} inherited"
    )
    return env
