"""
CLI (loom/cli)

Tests the loom command group: validate, inspect, graph, plan and the
variable collection helpers.
"""

import json

import click
import pytest
from click.testing import CliRunner

from loom.cli.__main__ import cli
from loom.cli.commands.resolve import collect_variables, parse_var_options


APP_TOML = '''
spin_manifest_version = 2

[application]
name = "shop"
version = "0.3.0"

[variables]
region = { default = "us" }
token = { required = true, secret = true }

[[trigger.http]]
component = "web"
route = "/..."

[component.web]
source = "web.wasm"
allowed_outbound_hosts = ["https://api.example.com"]
dependencies_inherit_configuration = true
environment = { MODE = "prod" }

[component.web.build]
command = "make web"
workdir = "web"

[component.web.dependencies]
"shop:auth/check" = { path = "auth.wasm" }

[component.auth]
source = "auth.wasm"
'''

REGISTRY_INDEX = '''
packages:
  "fizz:buzz":
    versions: ["0.1.0", "1.0.0"]
'''


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def app_dir(tmp_path):
    (tmp_path / "spin.toml").write_text(APP_TOML)
    (tmp_path / "web.wasm").write_bytes(b"\0asm")
    (tmp_path / "auth.wasm").write_bytes(b"\0asm")
    return tmp_path


def invoke(runner, *args):
    return runner.invoke(cli, [str(a) for a in args], obj={})


# ============================================================================
# Group
# ============================================================================

class TestCliGroup:

    def test_help_lists_commands(self, runner):
        result = invoke(runner, "--help")
        assert result.exit_code == 0
        for name in ("validate", "inspect", "graph", "plan"):
            assert name in result.output

    def test_version(self, runner):
        result = invoke(runner, "--version")
        assert result.exit_code == 0
        assert "1.0.0" in result.output


# ============================================================================
# validate
# ============================================================================

class TestValidateCommand:

    def test_success(self, runner, app_dir):
        result = invoke(runner, "validate", app_dir / "spin.toml", "--var", "token=t0k")
        assert result.exit_code == 0, result.output
        assert "shop resolved" in result.output
        assert "Components" in result.output

    def test_missing_variable(self, runner, app_dir):
        result = invoke(runner, "validate", app_dir / "spin.toml")
        assert result.exit_code == 1
        assert "Resolution failed" in result.output
        assert "MissingRequiredVariableError" in result.output

    def test_variable_from_environment(self, runner, app_dir):
        result = runner.invoke(
            cli,
            ["validate", str(app_dir / "spin.toml")],
            obj={},
            env={"LOOM_VARIABLE_TOKEN": "t0k"},
        )
        assert result.exit_code == 0, result.output

    def test_variable_from_env_file(self, runner, app_dir):
        env_file = app_dir / ".env"
        env_file.write_text("LOOM_VARIABLE_TOKEN=t0k\n")
        result = invoke(runner, "validate", app_dir / "spin.toml", "--env-file", env_file)
        assert result.exit_code == 0, result.output

    def test_bad_var_syntax(self, runner, app_dir):
        result = invoke(runner, "validate", app_dir / "spin.toml", "--var", "token")
        assert result.exit_code == 2
        assert "NAME=VALUE" in result.output

    def test_missing_source_file(self, runner, app_dir):
        (app_dir / "auth.wasm").unlink()
        result = invoke(runner, "validate", app_dir / "spin.toml", "--var", "token=t0k")
        assert result.exit_code == 1
        assert "SourceNotFoundError" in result.output

    def test_config_disables_existence_check(self, runner, app_dir):
        (app_dir / "auth.wasm").unlink()
        config = app_dir / "loom.yaml"
        config.write_text("resolver:\n  check_source_exists: false\n")
        result = invoke(
            runner, "validate", app_dir / "spin.toml", "--var", "token=t0k", "--config", config
        )
        assert result.exit_code == 0, result.output

    def test_layers(self, runner, app_dir):
        overrides = app_dir / "overrides.toml"
        overrides.write_text('[application]\nversion = "0.4.0"\n')
        result = invoke(
            runner, "inspect", app_dir / "spin.toml", overrides, "--var", "token=t0k", "--json"
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["version"] == "0.4.0"

    def test_registry_index(self, runner, app_dir):
        manifest = app_dir / "spin.toml"
        manifest.write_text(APP_TOML + '\n[component.auth.dependencies]\n"fizz:buzz" = "^1"\n')
        index = app_dir / "registry.yaml"
        index.write_text(REGISTRY_INDEX)
        result = invoke(
            runner, "graph", manifest, "--var", "token=t0k", "--registry-index", index
        )
        assert result.exit_code == 0, result.output
        assert "fizz:buzz@1.0.0" in result.output

    def test_malformed_registry_index(self, runner, app_dir):
        index = app_dir / "registry.yaml"
        index.write_text('packages:\n  "fizz:buzz": ["1.0.0"]\n')
        result = invoke(
            runner, "validate", app_dir / "spin.toml", "--var", "token=t0k", "--registry-index", index
        )
        assert result.exit_code == 1
        assert "ConfigError" in result.output
        assert "packages.fizz:buzz" in result.output
        assert "Traceback" not in result.output


# ============================================================================
# inspect
# ============================================================================

class TestInspectCommand:

    def test_json_redacts_secrets(self, runner, app_dir):
        result = invoke(runner, "inspect", app_dir / "spin.toml", "--var", "token=t0k", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["variables"]["token"] == "<redacted>"
        assert "t0k" not in result.output

    def test_show_secrets(self, runner, app_dir):
        result = invoke(
            runner, "inspect", app_dir / "spin.toml", "--var", "token=t0k", "--json", "--show-secrets"
        )
        assert json.loads(result.output)["variables"]["token"] == "t0k"

    def test_human_output(self, runner, app_dir):
        result = invoke(runner, "inspect", app_dir / "spin.toml", "--var", "token=t0k")
        assert result.exit_code == 0, result.output
        assert "Application shop" in result.output
        assert "http → web" in result.output
        assert "t0k" not in result.output

    def test_inherited_configuration(self, runner, app_dir):
        result = invoke(runner, "inspect", app_dir / "spin.toml", "--var", "token=t0k", "--json")
        auth = next(c for c in json.loads(result.output)["components"] if c["name"] == "auth")
        assert auth["environment"] == {"MODE": "prod"}
        assert auth["inherited_from"] == ["web"]


# ============================================================================
# graph / plan
# ============================================================================

class TestGraphAndPlan:

    def test_graph(self, runner, app_dir):
        result = invoke(runner, "graph", app_dir / "spin.toml", "--var", "token=t0k")
        assert result.exit_code == 0, result.output
        assert "shop:auth/check → auth" in result.output

    def test_graph_dot(self, runner, app_dir):
        result = invoke(runner, "graph", app_dir / "spin.toml", "--var", "token=t0k", "--dot")
        assert result.exit_code == 0, result.output
        assert result.output.startswith("digraph dependencies {")
        assert '"web" -> "auth" [label="shop:auth/check"];' in result.output

    def test_plan_json(self, runner, app_dir):
        result = invoke(runner, "plan", app_dir / "spin.toml", "--var", "token=t0k", "--json")
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == [
            {"component": "auth", "command": None, "workdir": None},
            {"component": "web", "command": "make web", "workdir": "web"},
        ]

    def test_plan_text(self, runner, app_dir):
        result = invoke(runner, "plan", app_dir / "spin.toml", "--var", "token=t0k")
        assert result.exit_code == 0, result.output
        assert "[1] auth: no build command" in click.unstyle(result.output)
        assert "[2] web: make web (in web)" in click.unstyle(result.output)


# ============================================================================
# Helpers
# ============================================================================

class TestVariableCollection:

    def test_parse_var_options(self):
        assert parse_var_options(["a=1", "b=x=y", "c="]) == {"a": "1", "b": "x=y", "c": ""}

    def test_parse_var_options_invalid(self):
        with pytest.raises(click.BadParameter):
            parse_var_options(["=value"])

    def test_precedence(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("LOOM_VARIABLE_REGION=from-file\nLOOM_VARIABLE_MODE=from-file\n")
        supplied = collect_variables(
            ["region", "mode", "token"],
            ["token=from-flag"],
            str(env_file),
            {"LOOM_VARIABLE_MODE": "from-env"},
        )
        assert supplied == {"region": "from-file", "mode": "from-env", "token": "from-flag"}

    def test_undeclared_environment_values_dropped(self):
        supplied = collect_variables(["region"], [], None, {"LOOM_VARIABLE_OTHER": "x"})
        assert supplied == {}

    def test_undeclared_flag_kept(self):
        supplied = collect_variables(["region"], ["typo=x"], None, {})
        assert supplied == {"typo": "x"}
