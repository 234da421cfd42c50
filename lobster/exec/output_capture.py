"""
Output capture for process and prompt steps.
Decodes raw process streams and detects JSON payloads in step output.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass
class CaptureResult:
    """Decoded output of a step."""
    stdout: str
    stderr: str
    exit_code: int
    json_data: Optional[Any] = None


def decode_stream(data: Union[bytes, str, None]) -> str:
    """Decode captured bytes as UTF-8, replacing undecodable sequences."""
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    return data.decode('utf-8', errors='replace')


def parse_json_output(text: str) -> Optional[Any]:
    """Parse text as JSON; None when it is empty or not JSON."""
    if not text or not text.strip():
        return None
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def capture(stdout: Union[bytes, str, None], stderr: Union[bytes, str, None], exit_code: int) -> CaptureResult:
    """Process captured streams into a CaptureResult."""
    stdout_text = decode_stream(stdout)
    return CaptureResult(
        stdout=stdout_text,
        stderr=decode_stream(stderr),
        exit_code=exit_code,
        json_data=parse_json_output(stdout_text),
    )
