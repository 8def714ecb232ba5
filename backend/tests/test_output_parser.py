"""
Tests for deployment output parsers.
"""
import json

import pytest

from raas.core.exceptions import OutputParseError
from raas.services.deployment.output_parser import (
    is_warning_only,
    parse_deployment_manifest,
    parse_proxy_output,
    require_upgrade_executor,
)

from conftest import BRIDGE_ADDRESS, CREATOR_ADDRESS, EXECUTOR_ADDRESS, PROXY_ADDRESS, PROXY_STDOUT


class TestParseDeploymentManifest:
    """Tests for parse_deployment_manifest."""

    def test_reads_creator_and_executor(self, tmp_path):
        path = tmp_path / "arbSepolia.json"
        path.write_text(json.dumps({"RollupCreator": CREATOR_ADDRESS, "UpgradeExecutor": EXECUTOR_ADDRESS}))

        manifest = parse_deployment_manifest(path)

        assert manifest.rollup_creator_address == CREATOR_ADDRESS
        assert manifest.upgrade_executor_address == EXECUTOR_ADDRESS

    def test_missing_file_raises(self, tmp_path):
        """Test a manifest the script never wrote is a parse failure."""
        with pytest.raises(OutputParseError) as exc_info:
            parse_deployment_manifest(tmp_path / "arbSepolia.json")

        assert "RollupCreator" in exc_info.value.message

    def test_invalid_json_raises(self, tmp_path):
        path = tmp_path / "arbSepolia.json"
        path.write_text("{not json")

        with pytest.raises(OutputParseError):
            parse_deployment_manifest(path)

    def test_missing_creator_raises(self, tmp_path):
        """Test the error lists the keys that were present."""
        path = tmp_path / "arbSepolia.json"
        path.write_text(json.dumps({"UpgradeExecutor": EXECUTOR_ADDRESS}))

        with pytest.raises(OutputParseError) as exc_info:
            parse_deployment_manifest(path)

        assert "UpgradeExecutor" in exc_info.value.message

    def test_missing_executor_is_deferred(self, tmp_path):
        """Test a manifest without UpgradeExecutor parses, and require_upgrade_executor rejects it."""
        path = tmp_path / "arbSepolia.json"
        path.write_text(json.dumps({"RollupCreator": CREATOR_ADDRESS}))

        manifest = parse_deployment_manifest(path)

        assert manifest.upgrade_executor_address is None
        with pytest.raises(OutputParseError):
            require_upgrade_executor(manifest, str(path))


class TestParseProxyOutput:
    """Tests for parse_proxy_output."""

    def test_extracts_proxy_block_and_extras(self):
        output = parse_proxy_output(PROXY_STDOUT)

        assert output.rollup_proxy_address == PROXY_ADDRESS
        assert output.deployment_block == 123456
        assert output.extra_addresses == {"BRIDGE_ADDRESS": BRIDGE_ADDRESS}

    def test_sequencer_inbox_not_mistaken_for_inbox(self):
        """Test overlapping markers resolve to their own lines."""
        stdout = (
            f"SequencerInbox Contract created at address: 0x{'02' * 20}\n"
            f"Inbox Contract created at address: 0x{'01' * 20}\n"
            f"RollupProxy Contract created at address: {PROXY_ADDRESS}\n"
        )

        output = parse_proxy_output(stdout)

        assert output.extra_addresses["INBOX_ADDRESS"] == "0x" + "01" * 20
        assert output.extra_addresses["SEQUENCER_INBOX_ADDRESS"] == "0x" + "02" * 20

    def test_missing_proxy_marker_raises(self):
        with pytest.raises(OutputParseError) as exc_info:
            parse_proxy_output("All deployed at block number: 5\n")

        assert "rollup proxy address" in exc_info.value.message

    def test_missing_block_defaults_to_zero(self):
        output = parse_proxy_output(f"RollupProxy Contract created at address: {PROXY_ADDRESS}\n")

        assert output.deployment_block == 0

    def test_non_integer_block_raises(self):
        stdout = (
            f"RollupProxy Contract created at address: {PROXY_ADDRESS}\n"
            "All deployed at block number: soon\n"
        )

        with pytest.raises(OutputParseError):
            parse_proxy_output(stdout)


class TestIsWarningOnly:
    """Tests for is_warning_only."""

    @pytest.mark.parametrize(
        "stderr,expected",
        [
            ("Warning: unused variable\nwarning: shadowed declaration\n", True),
            ("warn  deprecated dependency\n", True),
            ("Warning: unused variable\nError: stack too deep\n", False),
            ("TypeError: cannot read property\n", False),
            ("", False),
            ("compilation aborted\n", False),
        ],
    )
    def test_classification(self, stderr, expected):
        assert is_warning_only(stderr) is expected
