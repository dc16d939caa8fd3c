"""Integration tests for CLI typed failures and failure manifests."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from typer.testing import CliRunner

from signallab.cli import app
from signallab.tests.helpers import write_config, write_dataset


class TestCliFailures(unittest.TestCase):
    """Validate typed exit codes and failure manifest behavior."""

    def test_run_with_missing_config_returns_config_exit_code(self) -> None:
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as temp_dir:
            missing_path = Path(temp_dir) / "missing.yaml"
            result = runner.invoke(app, ["run", "--config", str(missing_path)])
            self.assertEqual(result.exit_code, 2, msg=result.output)

    def test_run_with_invalid_yaml_returns_config_exit_code(self) -> None:
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.yaml"
            config_path.write_text("data: [unterminated\n", encoding="utf-8")
            result = runner.invoke(app, ["run", "--config", str(config_path)])
            self.assertEqual(result.exit_code, 2, msg=result.output)

    def test_unknown_strategy_override_returns_strategy_exit_code(self) -> None:
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write_dataset(root / "data")
            config_path = write_config(root / "config.yaml", root / "data", root / "artifacts")
            result = runner.invoke(
                app,
                ["run", "--config", str(config_path), "--strategy", "no_such_template"],
            )
            self.assertEqual(result.exit_code, 6, msg=result.output)

    def test_missing_data_dir_writes_failed_manifest(self) -> None:
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            artifacts_dir = root / "artifacts"
            config_path = write_config(root / "config.yaml", root / "absent", artifacts_dir)

            result = runner.invoke(app, ["run", "--config", str(config_path)])
            self.assertEqual(result.exit_code, 3, msg=result.output)
            self.assertIn("Failure manifest written to", result.output)

            manifests = list(artifacts_dir.glob("*/run_manifest.json"))
            self.assertEqual(len(manifests), 1)
            payload = json.loads(manifests[0].read_text(encoding="utf-8"))
            self.assertEqual(payload["status"], "failed")
            self.assertEqual(payload["failure"]["exception_type"], "DataUnavailableError")
            self.assertEqual(payload["failure"]["error_code"], "data_unavailable")

    def test_validate_config_rejects_strategy_conflict(self) -> None:
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            config_path = write_config(
                root / "config.yaml",
                root / "data",
                root / "artifacts",
                strategy_block="template: conservative_value\nfile: other.yaml",
            )
            result = runner.invoke(app, ["validate-config", "--config", str(config_path)])
            self.assertEqual(result.exit_code, 2, msg=result.output)

    def test_unknown_template_id_returns_strategy_exit_code(self) -> None:
        runner = CliRunner()
        result = runner.invoke(app, ["templates", "--id", "no_such_template"])
        self.assertEqual(result.exit_code, 6, msg=result.output)


if __name__ == "__main__":
    unittest.main()
