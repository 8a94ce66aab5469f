"""
Tests for plan, state and output rendering.
"""

from berth.core.declaration import load_declaration
from berth.core.expressions import UNKNOWN
from berth.core.planner import Action, Plan, Planner, ResourceChange
from berth.core.render import format_value, render_outputs, render_plan, render_state
from berth.core.state import ResourceState, StateDocument


class TestFormatValue:
    """Tests for format_value."""

    def test_values(self):
        assert format_value(UNKNOWN) == "(known after apply)"
        assert format_value([{"a": UNKNOWN}]) == "(known after apply)"
        assert format_value(None) == "null"
        assert format_value(False) == "false"
        assert format_value("nginx") == '"nginx"'
        assert format_value(8000) == "8000"


class TestRenderPlan:
    """Tests for render_plan."""

    def test_create_plan(self, fake_runtime, declaration_path, quiet_console):
        declaration = load_declaration(declaration_path, environ={})
        plan = Planner(fake_runtime, check_ports=False).plan(declaration, StateDocument())

        render_plan(plan, quiet_console)
        text = quiet_console.file.getvalue()

        assert "# docker_image.nginx will be created" in text
        assert '+ resource "docker_container" "nginx" {' in text
        assert "(known after apply)" in text
        assert "Plan: 2 to add, 0 to change, 0 to destroy." in text
        assert "Changes to Outputs:" in text

    def test_no_changes(self, quiet_console):
        render_plan(Plan(changes=[], state=StateDocument()), quiet_console)
        assert "No changes." in quiet_console.file.getvalue()

    def test_output_only_changes(self, quiet_console):
        state = StateDocument(outputs={"old": {"value": "x", "sensitive": False}})
        plan = Plan(changes=[], state=state, outputs={"ip": "172.17.0.2"}, output_changes=["ip", "old"])

        render_plan(plan, quiet_console)
        text = quiet_console.file.getvalue()

        assert "No changes." not in text
        assert "Only output values will change." in text
        assert '+ ip = "172.17.0.2"' in text
        assert "- old = null" in text

    def test_replacement_reason_shown(self, quiet_console):
        change = ResourceChange(
            address="docker_container.nginx",
            type="docker_container",
            name="nginx",
            action=Action.REPLACE,
            before={"name": "tutorial", "id": "abc"},
            after={"name": "web", "id": UNKNOWN},
            reasons=["name"],
        )
        render_plan(Plan(changes=[change], state=StateDocument()), quiet_console)
        text = quiet_console.file.getvalue()

        assert "must be replaced" in text
        assert '"tutorial" -> "web" # forces replacement' in text
        assert "Plan: 1 to add, 0 to change, 1 to destroy." in text

    def test_drift_note(self, quiet_console):
        plan = Plan(changes=[], state=StateDocument(), drifted=["docker_container.nginx"])
        render_plan(plan, quiet_console)
        assert "docker_container.nginx was deleted outside of berth" in quiet_console.file.getvalue()


class TestRenderState:
    """Tests for render_state and render_outputs."""

    def test_empty_state(self, quiet_console):
        render_state(StateDocument(), quiet_console)
        assert "The state is empty." in quiet_console.file.getvalue()

    def test_resources_and_outputs(self, quiet_console):
        state = StateDocument(
            resources=[ResourceState(type="docker_image", name="nginx", attributes={"id": "sha256:1"})],
            outputs={"image_id": {"value": "sha256:1", "sensitive": False}},
        )
        render_state(state, quiet_console)
        text = quiet_console.file.getvalue()

        assert "# docker_image.nginx:" in text
        assert 'id = "sha256:1"' in text
        assert 'image_id = "sha256:1"' in text

    def test_sensitive_output_hidden(self, quiet_console):
        state = StateDocument(outputs={"secret": {"value": "hunter2", "sensitive": True}})
        render_outputs(state, quiet_console)
        text = quiet_console.file.getvalue()
        assert "(sensitive value)" in text
        assert "hunter2" not in text
