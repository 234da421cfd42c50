"""
Resume token codec.

A token is URL-safe base64 (padding stripped) of the compact, key-sorted JSON
form of a ResumePayload. It is an opaque convenience string for the caller to
hand back, not a signed or encrypted artifact.
"""

import base64
import binascii
import json
import re
from typing import Any, Dict

from lobster.exceptions import ResumeTokenDecodeError
from lobster.state import (
    RESUME_KIND_WORKFLOW_FILE,
    RESUME_PROTOCOL_VERSION,
    ResumePayload,
    StepResult,
)

SUPPORTED_KINDS = {RESUME_KIND_WORKFLOW_FILE}
SUPPORTED_VERSIONS = {RESUME_PROTOCOL_VERSION}

# URL-safe alphabet only; optional trailing padding is tolerated
TOKEN_PATTERN = re.compile(r"[A-Za-z0-9_-]+={0,2}")


def encode_resume_token(payload: ResumePayload) -> str:
    """Serialize a payload into an opaque token."""
    # ASCII escapes keep lone surrogates (undecodable argv bytes) round-tripping
    text = json.dumps(payload.to_dict(), sort_keys=True, separators=(',', ':'))
    return base64.urlsafe_b64encode(text.encode('utf-8')).decode('ascii').rstrip('=')


def decode_resume_token(token: Any) -> ResumePayload:
    """
    Deserialize a token produced by encode_resume_token.

    Raises:
        ResumeTokenDecodeError: If the token is malformed or its payload is
            not a well-formed continuation
    """
    if not isinstance(token, str) or not token.strip():
        raise ResumeTokenDecodeError("Resume token must be a non-empty string")

    raw = token.strip()
    if not TOKEN_PATTERN.fullmatch(raw):
        raise ResumeTokenDecodeError("Invalid resume token: unexpected characters")

    raw = raw.rstrip('=')
    try:
        data = base64.b64decode(raw + '=' * (-len(raw) % 4), altchars=b'-_', validate=True)
        text = data.decode('utf-8')
        decoded = json.loads(text)
    except (binascii.Error, ValueError) as e:
        # UnicodeDecodeError and JSONDecodeError are both ValueErrors
        raise ResumeTokenDecodeError(f"Invalid resume token: {e}") from e

    return payload_from_dict(decoded)


def payload_from_dict(data: Any) -> ResumePayload:
    """Validate the decoded structure and rebuild the payload."""
    if not isinstance(data, dict):
        raise ResumeTokenDecodeError("Invalid resume token: payload must be an object")

    kind = data.get('kind')
    if kind not in SUPPORTED_KINDS:
        raise ResumeTokenDecodeError(f"Invalid resume token: unsupported kind {kind!r}")

    version = data.get('version')
    if isinstance(version, bool) or version not in SUPPORTED_VERSIONS:
        raise ResumeTokenDecodeError(f"Invalid resume token: unsupported version {version!r}")

    file_path = data.get('file_path')
    if file_path is not None and (not isinstance(file_path, str) or not file_path):
        raise ResumeTokenDecodeError("Invalid resume token: file_path must be a non-empty string or null")

    checksum = data.get('workflow_checksum')
    if checksum is not None and not isinstance(checksum, str):
        raise ResumeTokenDecodeError("Invalid resume token: workflow_checksum must be a string")

    resume_at = data.get('resume_at')
    if isinstance(resume_at, bool) or not isinstance(resume_at, int) or resume_at < 0:
        raise ResumeTokenDecodeError("Invalid resume token: resume_at must be a non-negative integer")

    args = data.get('args', {})
    if not isinstance(args, dict):
        raise ResumeTokenDecodeError("Invalid resume token: args must be an object")

    steps = data.get('steps')
    if not isinstance(steps, list):
        raise ResumeTokenDecodeError("Invalid resume token: steps must be a list")

    return ResumePayload(
        kind=kind,
        version=version,
        file_path=file_path,
        workflow_checksum=checksum,
        resume_at=resume_at,
        args=args,
        steps=[_step_from_dict(i, step) for i, step in enumerate(steps)],
    )


def _step_from_dict(index: int, data: Any) -> StepResult:
    if not isinstance(data, dict):
        raise ResumeTokenDecodeError(f"Invalid resume token: steps[{index}] must be an object")

    expected: Dict[str, type] = {'id': str, 'kind': str, 'stdout': str, 'stderr': str}
    for key, kind in expected.items():
        if not isinstance(data.get(key), kind):
            raise ResumeTokenDecodeError(f"Invalid resume token: steps[{index}].{key} must be a {kind.__name__}")

    exit_code = data.get('exit_code')
    if isinstance(exit_code, bool) or not isinstance(exit_code, int):
        raise ResumeTokenDecodeError(f"Invalid resume token: steps[{index}].exit_code must be an integer")

    if data['kind'] not in ('command', 'prompt'):
        raise ResumeTokenDecodeError(f"Invalid resume token: steps[{index}].kind is not a step kind")

    return StepResult.from_dict(data)
