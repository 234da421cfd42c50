"""Tests for loader shape validation."""

import json

import pytest
import tempfile
import yaml
from pathlib import Path

from lobster.definition import OutputPolicy, StepKind
from lobster.exceptions import WorkflowValidationError
from lobster.loader import WorkflowLoader


class TestLoaderValidation:
    """Test strict shape validation in the loader."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.workspace = Path(self.temp_dir)
        self.loader = WorkflowLoader()

    def write_workflow(self, content: dict) -> Path:
        """Helper to write workflow YAML."""
        path = self.workspace / "workflow.lobster"
        with open(path, 'w') as f:
            yaml.dump(content, f)
        return path

    def assert_error(self, workflow: dict, fragment: str):
        path = self.write_workflow(workflow)
        with pytest.raises(WorkflowValidationError) as exc_info:
            self.loader.load(path)

        assert exc_info.value.exit_code == 2
        assert any(fragment in err.message for err in exc_info.value.errors), exc_info.value.errors
        return exc_info.value

    def test_prompt_only_step_is_valid(self):
        path = self.write_workflow({
            "name": "valid-prompt",
            "steps": [{"id": "ask", "prompt": "Hello?"}]
        })

        definition = self.loader.load(path)

        assert definition.steps[0].kind is StepKind.PROMPT
        assert definition.steps[0].command is None

    def test_both_command_and_prompt_rejected(self):
        error = self.assert_error({
            "name": "invalid",
            "steps": [{"id": "bad", "command": "echo hi", "prompt": "also this"}]
        }, "cannot have both command and prompt")

        assert "'bad'" in str(error)

    def test_neither_command_nor_prompt_rejected(self):
        error = self.assert_error({
            "name": "invalid",
            "steps": [{"id": "empty"}]
        }, "requires a command or prompt")

        assert "'empty'" in str(error)

    def test_duplicate_ids_rejected(self):
        self.assert_error({
            "name": "dupes",
            "steps": [
                {"id": "same", "command": "echo one"},
                {"id": "same", "command": "echo two"},
            ]
        }, "Duplicate step id 'same'")

    def test_system_requires_prompt(self):
        self.assert_error({
            "name": "sys",
            "steps": [{"id": "run", "command": "echo hi", "system": "be terse"}]
        }, "system requires prompt")

    def test_all_errors_reported_together(self):
        path = self.write_workflow({
            "name": "many",
            "steps": [
                {"id": "a"},
                {"id": "b", "command": "x", "prompt": "y"},
                {"id": "a", "command": "z"},
            ]
        })

        with pytest.raises(WorkflowValidationError) as exc_info:
            self.loader.load(path)

        messages = [err.message for err in exc_info.value.errors]
        assert len(messages) == 3
        assert "Step 'a': requires a command or prompt" in messages
        assert "Step 'b': cannot have both command and prompt" in messages
        assert "Duplicate step id 'a'" in messages

    def test_missing_steps_rejected(self):
        self.assert_error({"name": "nothing"}, "'steps' field is required")

    def test_missing_name_rejected(self):
        self.assert_error({"steps": [{"id": "a", "command": "true"}]}, "'name' field is required")

    def test_unknown_fields_rejected(self):
        self.assert_error({
            "name": "unknown",
            "steps": [{"id": "a", "command": "true", "retries": 3}]
        }, "unknown field 'retries'")

    def test_non_string_command_rejected(self):
        self.assert_error({
            "name": "argv",
            "steps": [{"id": "a", "command": ["echo", "hi"]}]
        }, "command must be a string")

    def test_invalid_output_policy_rejected(self):
        self.assert_error({
            "name": "policy",
            "output": "some",
            "steps": [{"id": "a", "command": "true"}]
        }, "'output' must be one of")

    def test_cwd_not_allowed_on_prompt_step(self):
        self.assert_error({
            "name": "cwd",
            "steps": [{"id": "a", "prompt": "hi", "cwd": "./x"}]
        }, "cwd is only allowed on command steps")

    def test_non_mapping_document_rejected(self):
        path = self.workspace / "workflow.lobster"
        path.write_text("- just\n- a list\n")

        with pytest.raises(WorkflowValidationError, match="must be a YAML object"):
            self.loader.load(path)

    def test_missing_file_rejected(self):
        with pytest.raises(WorkflowValidationError, match="Failed to load workflow"):
            self.loader.load(self.workspace / "missing.lobster")

    def test_json_workflow_loads(self):
        path = self.workspace / "workflow.json"
        path.write_text(json.dumps({
            "name": "json-flow",
            "args": {"topic": {"default": "AI safety", "description": "What to ask about"}},
            "env": {"PORT": 8080, "MODE": "on"},
            "cwd": "./scripts",
            "output": "all",
            "steps": [
                {"id": "data", "command": "echo hi", "env": {"DEBUG": True}},
                {"id": "ask", "prompt": "Tell me about ${topic}.", "system": "Be brief", "stdin": "$data.stdout"},
            ]
        }))

        definition = self.loader.load(path)

        assert definition.name == "json-flow"
        assert definition.args["topic"].default == "AI safety"
        assert definition.env == {"PORT": "8080", "MODE": "on"}
        assert definition.steps[0].env == {"DEBUG": "true"}
        assert definition.cwd == "./scripts"
        assert definition.output is OutputPolicy.ALL
        assert definition.step_ids() == ("data", "ask")
        assert definition.source_path == path.resolve()
        assert definition.base_dir == path.resolve().parent
        assert definition.checksum.startswith("sha256:")

    def test_yaml_on_keeps_string(self):
        path = self.workspace / "workflow.lobster"
        path.write_text(
            "name: flags\n"
            "env:\n"
            "  FEATURE: on\n"
            "steps:\n"
            "  - id: a\n"
            "    command: echo $FEATURE\n"
        )

        definition = self.loader.load(path)

        assert definition.env["FEATURE"] == "on"

    def test_definition_is_immutable(self):
        path = self.write_workflow({
            "name": "frozen",
            "env": {"A": "1"},
            "steps": [{"id": "a", "command": "true"}]
        })

        definition = self.loader.load(path)

        with pytest.raises(Exception):
            definition.name = "changed"
        with pytest.raises(TypeError):
            definition.env["A"] = "2"
