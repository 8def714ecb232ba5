"""
Tests for ConfigRenderer and template rendering.
"""
import json
import os
import stat

import pytest
import yaml

from raas.core.exceptions import ConfigRenderError, MissingConfigurationError, TemplateNotFoundError
from raas.services.deployment.config_renderer import (
    COMPOSE_FILE,
    FULL_NODE,
    JWT_FILE,
    L2_CHAIN_INFO,
    VALIDATION_NODE,
    ConfigRenderer,
    NodeCredentials,
    render_template,
)

from conftest import BRIDGE_ADDRESS, EXECUTOR_ADDRESS, OWNER, PROXY_ADDRESS

CREDENTIALS = NodeCredentials(
    validator_private_key="0xvalidatorkey",
    batch_poster_private_key="0xposterkey",
    parent_chain_rpc_url="http://parent:8545",
)


@pytest.fixture
def renderer(test_settings):
    return ConfigRenderer(settings=test_settings)


@pytest.fixture
def rendered(renderer, rollup_config, deployment_result, tmp_path):
    config_dir = tmp_path / "config"
    manifest_path = renderer.render(rollup_config, deployment_result, CREDENTIALS, config_dir, tmp_path / "workspace")
    return config_dir, manifest_path


class TestRenderTemplate:
    """Tests for render_template."""

    def test_substitutes_keys(self, tmp_path):
        (tmp_path / "Dockerfile").write_text("FROM {{IMAGE}}\nEXPOSE {{PORT}}\n")

        content = render_template("Dockerfile", {"IMAGE": "nitro:latest", "PORT": 8547}, tmp_path)

        assert content == "FROM nitro:latest\nEXPOSE 8547\n"

    def test_json_values_are_escaped(self, tmp_path):
        (tmp_path / "t.json").write_text('{"url": "{{URL}}"}')

        content = render_template("t.json", {"URL": 'http://h/"quoted"'}, tmp_path)

        assert json.loads(content)["url"] == 'http://h/"quoted"'

    def test_missing_template_raises(self, tmp_path):
        with pytest.raises(TemplateNotFoundError):
            render_template("nope.json", {}, tmp_path)


class TestConfigRendererRender:
    """Tests for ConfigRenderer.render."""

    def test_writes_all_files(self, rendered):
        config_dir, manifest_path = rendered

        for name in (L2_CHAIN_INFO, FULL_NODE, VALIDATION_NODE, JWT_FILE, COMPOSE_FILE):
            assert (config_dir / name).is_file()
        assert manifest_path == config_dir / COMPOSE_FILE

    def test_chain_info_carries_deployment(self, rendered):
        config_dir, _ = rendered

        chain_info = json.loads((config_dir / L2_CHAIN_INFO).read_text())[0]

        assert chain_info["chain-id"] == 42
        assert chain_info["parent-chain-id"] == 421614
        assert chain_info["chain-config"]["arbitrum"]["InitialChainOwner"] == "0x" + OWNER.hex()
        assert chain_info["rollup"]["rollup"] == PROXY_ADDRESS
        assert chain_info["rollup"]["upgrade-executor"] == EXECUTOR_ADDRESS
        assert chain_info["rollup"]["bridge"] == BRIDGE_ADDRESS
        assert chain_info["rollup"]["deployed-at"] == 123456

    def test_missing_extra_address_falls_back_to_settings(self, test_settings, rollup_config, deployment_result, tmp_path):
        """Test addresses the proxy script did not print come from settings."""
        inbox = "0x" + "ee" * 20
        renderer = ConfigRenderer(settings=test_settings.model_copy(update={"INBOX_ADDRESS": inbox}))

        renderer.render(rollup_config, deployment_result, CREDENTIALS, tmp_path / "config", tmp_path / "ws")

        chain_info = json.loads((tmp_path / "config" / L2_CHAIN_INFO).read_text())[0]
        assert chain_info["rollup"]["inbox"] == inbox

    def test_full_node_is_private(self, rendered):
        """Test files holding keys are readable only by the owner."""
        config_dir, _ = rendered

        full_node = (config_dir / FULL_NODE).read_text()
        assert "0xvalidatorkey" in full_node
        assert "http://parent:8545" in full_node
        assert stat.S_IMODE(os.stat(config_dir / FULL_NODE).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(config_dir / JWT_FILE).st_mode) == 0o600

    def test_jwt_is_fresh_hex(self, renderer, rollup_config, deployment_result, tmp_path):
        renderer.render(rollup_config, deployment_result, CREDENTIALS, tmp_path / "a", tmp_path / "wa")
        renderer.render(rollup_config, deployment_result, CREDENTIALS, tmp_path / "b", tmp_path / "wb")

        first = (tmp_path / "a" / JWT_FILE).read_text()
        second = (tmp_path / "b" / JWT_FILE).read_text()
        assert first.startswith("0x") and len(first) == 66
        assert first != second

    def test_compose_manifest_points_at_rollup_dirs(self, rendered, tmp_path):
        config_dir, manifest_path = rendered

        manifest = yaml.safe_load(manifest_path.read_text())

        assert set(manifest["services"]) == {"validation_node", "nitro"}
        nitro = manifest["services"]["nitro"]
        assert f"{config_dir.resolve()}:/config:ro" in nitro["volumes"]
        assert (tmp_path / "workspace" / "data" / "nitro").is_dir()
        assert nitro["depends_on"] == ["validation_node"]

    def test_unwritable_config_dir_raises(self, renderer, rollup_config, deployment_result, tmp_path):
        blocker = tmp_path / "config"
        blocker.write_text("not a directory")

        with pytest.raises(ConfigRenderError):
            renderer.render(rollup_config, deployment_result, CREDENTIALS, blocker, tmp_path / "workspace")


class TestNodeCredentials:
    """Tests for NodeCredentials.from_settings."""

    def test_missing_key_raises(self, test_settings):
        settings = test_settings.model_copy(update={"VALIDATOR_PRIVATE_KEY": None})

        with pytest.raises(MissingConfigurationError) as exc_info:
            NodeCredentials.from_settings(settings)

        assert "VALIDATOR_PRIVATE_KEY" in exc_info.value.message

    def test_repr_hides_keys(self):
        assert "0xvalidatorkey" not in repr(CREDENTIALS)
