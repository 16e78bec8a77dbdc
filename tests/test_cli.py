"""
Tests for the policy migration CLI.

Commands run against a mocked orchestrator patched in through
``build_orchestrator``.
"""

from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from policy_migration.cli.main import main
from policy_migration.core.exceptions import NotTrustedError
from policy_migration.endpoints.base import TrustedEndpoint
from policy_migration.models.policy import MigrationRecord, PolicyState
from policy_migration.orchestrator.registry import MigrationKey

POLICY = MigrationRecord(
    id="42",
    name="linux-high",
    enforcement_mode="blocking",
    state=PolicyState.AVAILABLE,
    path="/Common/linux-high",
)
KEY = MigrationKey("10.0.0.2", 443, "42")


def mock_orchestrator():
    orchestrator = MagicMock()
    orchestrator.close = AsyncMock()
    orchestrator.wait_idle = AsyncMock()
    return orchestrator


class TestCLI:
    """Test CLI functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_main_command_help(self):
        """Test main command shows help when no subcommand provided."""
        result = self.runner.invoke(main, [])

        assert result.exit_code == 0
        assert "Trusted Policy Migration" in result.output

    def test_version_flag(self):
        """Test version flag displays version information."""
        result = self.runner.invoke(main, ['--version'])

        assert result.exit_code == 0
        assert "Policy Migration version" in result.output

    def test_help_lists_commands(self):
        """Test help lists every command."""
        result = self.runner.invoke(main, ['--help'])

        assert result.exit_code == 0
        for command in ("serve", "devices", "list", "migrate", "delete", "export"):
            assert command in result.output

    def test_invalid_config(self, tmp_path):
        """Test an invalid settings file."""
        config = tmp_path / "settings.yaml"
        config.write_text("chunk_size: 0\n")

        result = self.runner.invoke(main, ['--config', str(config), 'list'])

        assert result.exit_code == 1
        assert "Invalid settings" in result.output


class TestCommands:
    """Test the commands that talk to appliances."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()
        self.orchestrator = mock_orchestrator()

    def invoke(self, args):
        with patch('policy_migration.cli.main.build_orchestrator', return_value=self.orchestrator):
            return self.runner.invoke(main, args)

    def test_devices(self):
        """Test listing trusted devices."""
        device = TrustedEndpoint("10.0.0.2", 443, MagicMock(), uuid="uuid-b", state="ACTIVE")
        self.orchestrator.resolver.list_devices = AsyncMock(return_value=[device])

        result = self.invoke(['devices'])

        assert result.exit_code == 0
        assert "10.0.0.2" in result.output
        self.orchestrator.close.assert_awaited_once()

    def test_list(self):
        """Test listing policies on a target."""
        with patch('policy_migration.cli.main.PolicyService') as service_class:
            service_class.return_value.list_policies = AsyncMock(return_value=[POLICY])

            result = self.invoke(['list', '--target', '10.0.0.2'])

        assert result.exit_code == 0
        assert "linux-high" in result.output
        service_class.return_value.list_policies.assert_awaited_once_with("10.0.0.2")

    def test_migrate_success(self):
        """Test a migration that completes."""
        self.orchestrator.migrate_between_devices = AsyncMock(
            return_value=POLICY.with_state(PolicyState.REQUESTED)
        )

        result = self.invoke(['migrate', '--source', '10.0.0.3', '--target', '10.0.0.2', '--policy-id', '42'])

        assert result.exit_code == 0
        assert "migrated" in result.output
        self.orchestrator.migrate_between_devices.assert_awaited_once_with(
            "10.0.0.3", "10.0.0.2", "42", None, None
        )
        self.orchestrator.wait_idle.assert_awaited_once()

    def test_migrate_failure(self):
        """Test a migration that ends in ERROR exits non-zero."""
        callbacks = []
        self.orchestrator.add_progress_callback.side_effect = callbacks.append

        async def migrate(*args):
            for callback in callbacks:
                callback(KEY, POLICY.with_state(PolicyState.ERROR))
            return POLICY.with_state(PolicyState.REQUESTED)

        self.orchestrator.migrate_between_devices = AsyncMock(side_effect=migrate)

        result = self.invoke(['migrate', '--target', '10.0.0.2', '--policy-name', 'linux-high'])

        assert result.exit_code == 1
        assert "failed" in result.output

    def test_migrate_from_url(self):
        """Test a URL migration."""
        self.orchestrator.migrate_from_url = AsyncMock(
            return_value=MigrationRecord(id="linux-copy", name="linux-copy")
        )

        result = self.invoke([
            'migrate', '--url', 'https://example.com/p.xml', '--target-policy-name', 'linux-copy'
        ])

        assert result.exit_code == 0
        self.orchestrator.migrate_from_url.assert_awaited_once_with(
            'https://example.com/p.xml', None, 'linux-copy'
        )

    def test_delete_error(self):
        """Test service errors end the command with status 1."""
        with patch('policy_migration.cli.main.PolicyService') as service_class:
            service_class.return_value.delete_policy = AsyncMock(
                side_effect=NotTrustedError("target 10.9.9.9 is not a trusted device.")
            )

            result = self.invoke(['delete', '--target', '10.9.9.9', '--policy-id', '42'])

        assert result.exit_code == 1
        assert "not a trusted device" in result.output
        self.orchestrator.close.assert_awaited_once()

    def test_export_to_file(self, tmp_path):
        """Test exporting policy XML to a file."""
        output = tmp_path / "linux-high.xml"
        with patch('policy_migration.cli.main.PolicyService') as service_class:
            service_class.return_value.export_policy_content = AsyncMock(return_value=(POLICY, "<policy/>"))

            result = self.invoke(['export', '--source', '10.0.0.3', '--policy-id', '42', '-o', str(output)])

        assert result.exit_code == 0
        assert output.read_text() == "<policy/>"

    def test_export_to_stdout(self):
        """Test exporting policy XML to standard output."""
        with patch('policy_migration.cli.main.PolicyService') as service_class:
            service_class.return_value.export_policy_content = AsyncMock(return_value=(POLICY, "<policy/>"))

            result = self.invoke(['export', '--policy-name', 'linux-high'])

        assert result.exit_code == 0
        assert "<policy/>" in result.output
