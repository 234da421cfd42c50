"""
Variable substitution module.
Template resolution and environment composition.
"""

from .substitution import VariableSubstitutor, resolve_template
from .env import compose_env, compose_workflow_env

__all__ = ['VariableSubstitutor', 'resolve_template', 'compose_env', 'compose_workflow_env']
