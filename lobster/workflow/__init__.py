"""Workflow execution module."""

from .runner import HaltDescriptor, RunResult, WorkflowRunner, run_workflow_file

__all__ = ['HaltDescriptor', 'RunResult', 'WorkflowRunner', 'run_workflow_file']
