"""
Tests for prompt steps: halting with needs_llm and resuming with a
host-supplied completion.
"""

import json

import pytest

from lobster.exceptions import ResumeTokenError, WorkflowChangedError
from lobster.resume import decode_resume_token
from lobster.workflow.runner import run_workflow_file


def test_prompt_only_step_halts(write_workflow, base_env):
    path = write_workflow({"name": "valid-prompt", "steps": [{"id": "ask", "prompt": "Hello?"}]})

    result = run_workflow_file(path, env=base_env)

    assert result.status == "needs_llm"
    assert result.output == []
    assert result.requires_llm.prompt == "Hello?"
    assert result.requires_llm.system is None
    assert result.requires_llm.context is None


def test_prompt_step_halts_with_rendered_prompt_and_context(write_workflow, base_env):
    path = write_workflow({
        "name": "host-test",
        "steps": [
            {"id": "data", "command": 'echo "some raw data from search"'},
            {
                "id": "summarize",
                "prompt": "Summarize this data.",
                "system": "You are helpful.",
                "stdin": "$data.stdout",
            },
            {"id": "output", "command": 'echo "after llm: $summarize.stdout"'},
        ],
    })

    result = run_workflow_file(path, env=base_env)

    assert result.status == "needs_llm"
    halt = result.requires_llm
    assert halt.prompt == "Summarize this data."
    assert halt.system == "You are helpful."
    assert halt.context == "some raw data from search\n"
    assert halt.step_id == "summarize"
    assert halt.resume_token

    envelope = result.to_dict()
    assert envelope["status"] == "needs_llm"
    assert envelope["requiresLlm"] == {
        "type": "llm_request",
        "prompt": "Summarize this data.",
        "system": "You are helpful.",
        "context": "some raw data from search\n",
        "resumeToken": halt.resume_token,
    }


def test_halt_token_records_completed_steps(write_workflow, base_env):
    path = write_workflow({
        "name": "token-contents",
        "args": {"topic": {"default": "AI"}},
        "steps": [
            {"id": "data", "command": "printf '%s' '{\"n\": 1}'"},
            {"id": "ask", "prompt": "About ${topic}"},
        ],
    })

    result = run_workflow_file(path, env=base_env, args={"topic": "robots"})
    payload = decode_resume_token(result.requires_llm.resume_token)

    assert result.requires_llm.prompt == "About robots"
    assert payload.kind == "workflow-file"
    assert payload.file_path == str(path.resolve())
    assert payload.resume_at == 1
    assert payload.args == {"topic": "robots"}
    assert [step.id for step in payload.steps] == ["data"]
    assert payload.steps[0].json == {"n": 1}


def test_resume_with_llm_response_runs_to_completion(write_workflow, base_env):
    path = write_workflow({
        "name": "resume-test",
        "steps": [
            {"id": "data", "command": 'echo "raw input"'},
            {"id": "summarize", "prompt": "Summarize this.", "stdin": "$data.stdout"},
            {"id": "output", "command": "cat", "stdin": "$summarize.stdout"},
        ],
    })

    first = run_workflow_file(path, env=base_env)
    assert first.status == "needs_llm"

    payload = decode_resume_token(first.requires_llm.resume_token)
    second = run_workflow_file(resume=payload, llm_response="Here is the summary from the host LLM.", env=base_env)

    assert second.status == "ok"
    assert second.output == ["Here is the summary from the host LLM."]


def test_completion_is_not_template_rendered(write_workflow, base_env):
    path = write_workflow({
        "name": "verbatim",
        "steps": [
            {"id": "ask", "prompt": "Say something"},
            {"id": "echo", "command": "cat", "stdin": "${ask.stdout}"},
        ],
    })
    completion = "literal ${ask.stdout} and $HOME.dir and $$ signs"

    first = run_workflow_file(path, env=base_env)
    second = run_workflow_file(
        resume=decode_resume_token(first.requires_llm.resume_token),
        llm_response=completion,
        env=base_env,
    )

    assert second.output == [completion]


def test_prompt_resolves_args_in_template(write_workflow, base_env):
    path = write_workflow({
        "name": "template-test",
        "args": {"topic": {"default": "AI safety"}},
        "steps": [{"id": "ask", "prompt": "Tell me about ${topic}."}],
    })

    result = run_workflow_file(path, env=base_env)

    assert result.status == "needs_llm"
    assert result.requires_llm.prompt == "Tell me about AI safety."


def test_two_prompt_steps_resume_in_order(write_workflow, base_env):
    path = write_workflow({
        "name": "multi-prompt",
        "steps": [
            {"id": "data", "command": 'echo "raw data"'},
            {"id": "step1", "prompt": "First analysis.", "stdin": "$data.stdout"},
            {"id": "step2", "prompt": "Second analysis.", "stdin": "$step1.stdout"},
            {"id": "done", "command": 'echo "final: $step2.stdout"'},
        ],
    })

    r1 = run_workflow_file(path, env=base_env)
    assert r1.status == "needs_llm"
    assert r1.requires_llm.prompt == "First analysis."

    p1 = decode_resume_token(r1.requires_llm.resume_token)
    r2 = run_workflow_file(resume=p1, llm_response="First result.", env=base_env)
    assert r2.status == "needs_llm"
    assert r2.requires_llm.prompt == "Second analysis."
    assert r2.requires_llm.context == "First result."

    p2 = decode_resume_token(r2.requires_llm.resume_token)
    assert p2.resume_at == 2
    assert [step.id for step in p2.steps] == ["data", "step1"]

    r3 = run_workflow_file(resume=p2, llm_response="Final insight.", env=base_env)
    assert r3.status == "ok"
    assert r3.output == ["final: Final insight."]


def test_resume_does_not_rerun_completed_steps(write_workflow, base_env, tmp_path):
    counter = tmp_path / "count.txt"
    path = write_workflow({
        "name": "exactly-once",
        "steps": [
            {"id": "tick", "command": f"echo tick >> '{counter}'"},
            {"id": "ask", "prompt": "Continue?"},
            {"id": "tock", "command": f"echo tock >> '{counter}'"},
        ],
    })

    first = run_workflow_file(path, env=base_env)
    run_workflow_file(resume=decode_resume_token(first.requires_llm.resume_token), llm_response="yes", env=base_env)

    assert counter.read_text().splitlines() == ["tick", "tock"]


def test_resume_without_completion_halts_again(write_workflow, base_env):
    path = write_workflow({"name": "again", "steps": [{"id": "ask", "prompt": "Hello?"}]})

    first = run_workflow_file(path, env=base_env)
    payload = decode_resume_token(first.requires_llm.resume_token)
    second = run_workflow_file(resume=payload, env=base_env)

    assert second.status == "needs_llm"
    assert second.requires_llm.prompt == "Hello?"
    assert decode_resume_token(second.requires_llm.resume_token) == payload


def test_json_completion_is_parsed_for_later_steps(write_workflow, base_env):
    path = write_workflow({
        "name": "json-reply",
        "steps": [
            {"id": "ask", "prompt": "Reply with JSON"},
            {"id": "pick", "command": "printf '%s' '${ask.json.answer}'"},
        ],
    })

    first = run_workflow_file(path, env=base_env)
    second = run_workflow_file(
        resume=decode_resume_token(first.requires_llm.resume_token),
        llm_response=json.dumps({"answer": "forty-two"}),
        env=base_env,
    )

    assert second.output == ["forty-two"]


def test_resume_rejects_modified_workflow(write_workflow, base_env):
    workflow = {"name": "changing", "steps": [{"id": "ask", "prompt": "Hello?"}]}
    path = write_workflow(workflow)
    first = run_workflow_file(path, env=base_env)

    workflow["steps"].append({"id": "later", "command": "true"})
    write_workflow(workflow)

    with pytest.raises(WorkflowChangedError, match="modified"):
        run_workflow_file(
            resume=decode_resume_token(first.requires_llm.resume_token),
            llm_response="hi",
            env=base_env,
        )


def test_resume_rejects_other_workflow_file(write_workflow, base_env, tmp_path):
    path = write_workflow({"name": "one", "steps": [{"id": "ask", "prompt": "Hello?"}]})
    other = write_workflow({"name": "two", "steps": [{"id": "ask", "prompt": "Hello?"}]}, name="other.lobster")
    first = run_workflow_file(path, env=base_env)

    with pytest.raises(ResumeTokenError, match="issued for"):
        run_workflow_file(
            other,
            resume=decode_resume_token(first.requires_llm.resume_token),
            llm_response="hi",
            env=base_env,
        )


def test_undecodable_completion_bytes_survive_the_next_halt(write_workflow, base_env):
    path = write_workflow({
        "name": "raw-bytes",
        "steps": [
            {"id": "first", "prompt": "One"},
            {"id": "second", "prompt": "Two", "stdin": "$first.stdout"},
        ],
    })
    completion = "bad \udcff bytes"

    first = run_workflow_file(path, env=base_env)
    second = run_workflow_file(
        resume=decode_resume_token(first.requires_llm.resume_token),
        llm_response=completion,
        env=base_env,
    )

    assert second.status == "needs_llm"
    assert second.requires_llm.context == completion
    payload = decode_resume_token(second.requires_llm.resume_token)
    assert payload.steps[0].stdout == completion
