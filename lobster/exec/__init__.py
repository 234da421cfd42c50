"""
Execution module.
Handles process execution, prompt rendering, and output capture.
"""

from .output_capture import CaptureResult, capture
from .step_executor import ProcessOutput, PromptRequest, StepExecutor, run_process

__all__ = [
    "CaptureResult",
    "capture",
    "ProcessOutput",
    "PromptRequest",
    "StepExecutor",
    "run_process",
]
