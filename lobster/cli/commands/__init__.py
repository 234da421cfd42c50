"""CLI command handlers."""

from .run import run_workflow
from .resume import parse_resume_args, resume_workflow

__all__ = ['run_workflow', 'resume_workflow', 'parse_resume_args']
