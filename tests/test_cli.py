"""
Tests for the berth command line.
"""

import os
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from berth import __version__, config
from berth.cli import cli
from berth.core.lifecycle import LifecycleDriver
from berth.core.state import StateLock, read_lock


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def workdir(tmp_path, declaration_path, fake_runtime):
    """A directory with berth.yaml whose runtime is the fake engine."""
    with patch.object(LifecycleDriver, "_runtime_from_registry", staticmethod(lambda declaration: fake_runtime)):
        yield tmp_path


def invoke(runner, workdir, *args, **kwargs):
    return runner.invoke(cli, ["-C", str(workdir), *args], obj={}, **kwargs)


class TestCommands:
    """Tests for the main verbs."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_init(self, runner, workdir):
        result = invoke(runner, workdir, "init")
        assert result.exit_code == 0
        assert "Berth has been successfully initialized!" in result.output
        assert (workdir / ".berth" / "providers.lock.json").exists()

    def test_validate(self, runner, workdir):
        result = invoke(runner, workdir, "validate", "--var", "container_name=web")
        assert result.exit_code == 0
        assert "Success!" in result.output

    def test_plan_before_init_fails(self, runner, workdir, fake_runtime):
        result = invoke(runner, workdir, "plan")
        assert result.exit_code == 1
        assert "ProviderNotInitializedError" in result.output
        assert "berth init" in result.output

    def test_plan(self, runner, workdir):
        invoke(runner, workdir, "init")
        result = invoke(runner, workdir, "plan")
        assert result.exit_code == 0
        assert "Plan: 2 to add, 0 to change, 0 to destroy." in result.output

    def test_apply_with_yes(self, runner, workdir, fake_runtime):
        invoke(runner, workdir, "init")
        result = invoke(runner, workdir, "apply", input="yes\n")

        assert result.exit_code == 0
        assert "Only 'yes' will be accepted" in result.output
        assert "Apply complete! Resources: 2 added, 0 changed, 0 destroyed." in result.output
        assert len(fake_runtime.containers) == 1

    def test_apply_with_anything_else_cancels(self, runner, workdir, fake_runtime):
        invoke(runner, workdir, "init")
        result = invoke(runner, workdir, "apply", input="y\n")

        assert result.exit_code == 1
        assert "ApplyCancelled" in result.output
        assert fake_runtime.containers == {}

    def test_apply_twice(self, runner, workdir, fake_runtime):
        invoke(runner, workdir, "init")
        invoke(runner, workdir, "apply", "--auto-approve")
        result = invoke(runner, workdir, "apply", "--auto-approve")

        assert result.exit_code == 0
        assert "No changes." in result.output
        assert len(fake_runtime.containers) == 1

    def test_destroy(self, runner, workdir, fake_runtime):
        invoke(runner, workdir, "init")
        invoke(runner, workdir, "apply", "--auto-approve")
        result = invoke(runner, workdir, "destroy", input="yes\n")

        assert result.exit_code == 0
        assert "Destroy complete! Resources: 2 destroyed." in result.output
        assert fake_runtime.containers == {}

    def test_bad_var_flag(self, runner, workdir):
        result = invoke(runner, workdir, "validate", "--var", "novalue")
        assert result.exit_code == 1
        assert "DeclarationError" in result.output


class TestStateCommands:
    """Tests for show, output and force-unlock."""

    def test_show_empty(self, runner, workdir):
        result = invoke(runner, workdir, "show")
        assert result.exit_code == 0
        assert "The state is empty." in result.output

    def test_output_after_apply(self, runner, workdir, fake_runtime):
        invoke(runner, workdir, "init")
        invoke(runner, workdir, "apply", "--auto-approve")
        container_id = next(iter(fake_runtime.containers))

        result = invoke(runner, workdir, "output", "container_id")

        assert result.exit_code == 0
        assert result.output.strip() == container_id

    def test_output_json(self, runner, workdir, fake_runtime):
        invoke(runner, workdir, "init")
        invoke(runner, workdir, "apply", "--auto-approve")

        result = invoke(runner, workdir, "output", "--json")

        assert result.exit_code == 0
        assert '"container_id"' in result.output

    def test_unknown_output(self, runner, workdir):
        result = invoke(runner, workdir, "output", "nope")
        assert result.exit_code == 1
        assert "OutputNotFoundError" in result.output

    def test_force_unlock(self, runner, workdir):
        info = StateLock(workdir / "berth.state.json", "apply").acquire()
        result = invoke(runner, workdir, "force-unlock", info.id, input="yes\n")

        assert result.exit_code == 0
        assert read_lock(workdir / "berth.state.json") is None

    def test_force_unlock_wrong_id(self, runner, workdir):
        StateLock(workdir / "berth.state.json", "apply").acquire()
        result = invoke(runner, workdir, "force-unlock", "wrong", "--force")
        assert result.exit_code == 1
        assert "StateLockError" in result.output

    def test_force_unlock_unreadable_lock(self, runner, workdir):
        (workdir / "berth.state.json.lock").write_text("garbage")
        result = invoke(runner, workdir, "force-unlock", "whatever", "--force")

        assert result.exit_code == 0
        assert "unreadable lock file has been removed" in result.output
        assert not (workdir / "berth.state.json.lock").exists()


class TestSettings:
    """Tests for settings read from DIR/.env."""

    @pytest.fixture(autouse=True)
    def restore_settings(self):
        with patch.dict(os.environ):
            yield
        config.load_settings()

    def test_dotenv_in_chdir_sets_variables(self, runner, workdir):
        (workdir / ".env").write_text("BERTH_VAR_container_name=from-dotenv\n")
        invoke(runner, workdir, "init")

        result = invoke(runner, workdir, "plan")

        assert result.exit_code == 0
        assert '"from-dotenv"' in result.output

    def test_dotenv_in_chdir_sets_lock_timeout(self, runner, workdir):
        (workdir / ".env").write_text("BERTH_LOCK_TIMEOUT=3\n")
        result = invoke(runner, workdir, "validate")

        assert result.exit_code == 0
        assert config.LOCK_TIMEOUT_SECONDS == 3.0
        assert LifecycleDriver(workdir)._lock_timeout == 3.0
