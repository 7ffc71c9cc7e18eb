"""
Tests for environment-driven node configuration.
"""

import pytest
from pydantic import ValidationError

from node.config import NodeConfig
from node.main import main


class TestNodeConfig:

    def test_defaults(self):
        config = NodeConfig.from_env({}, name="alice")
        assert config.namespace == "overlay"
        assert (config.broker_host, config.broker_port) == ("127.0.0.1", 1884)
        assert config.passphrase.get_secret_value() == "test"

    def test_from_environment(self):
        env = {
            "OVERLAY_NAME": "bob",
            "OVERLAY_NAMESPACE": "team",
            "BROKER_PORT": "1999",
            "PRIVATE_KEY_PASSPHRASE": "s3cret",
            "KEY_DIR": "/tmp/keys",
        }
        config = NodeConfig.from_env(env)
        assert (config.name, config.namespace, config.broker_port) == ("bob", "team", 1999)
        assert str(config.key_dir) == "/tmp/keys"
        assert config.passphrase.get_secret_value() == "s3cret"
        assert "s3cret" not in repr(config)

    def test_overrides_win(self):
        config = NodeConfig.from_env({"OVERLAY_NAME": "bob"}, name="carol", broker_port=None)
        assert config.name == "carol"
        assert config.broker_port == 1884

    @pytest.mark.parametrize("name", ["a/b", "", "x#", "+"])
    def test_bad_names(self, name):
        with pytest.raises(ValidationError):
            NodeConfig(name=name)

    def test_empty_passphrase_rejected(self):
        with pytest.raises(ValidationError):
            NodeConfig(name="alice", passphrase="")


class TestMain:

    def test_invalid_config_exits_2(self, monkeypatch):
        monkeypatch.delenv("OVERLAY_NAME", raising=False)
        assert main(["--name", "bad/name"]) == 2

    def test_unreachable_broker_exits_1(self, monkeypatch, tmp_path, keypairs):
        """Keys resolve first, then the failed connect aborts startup."""
        alice = keypairs["alice"]
        for f in ("public.pem", "private.pem"):
            (tmp_path / f).write_text(alice.public_pem if f == "public.pem" else alice.private_pem)
        monkeypatch.setenv("PRIVATE_KEY_PASSPHRASE", alice.passphrase)
        monkeypatch.delenv("BROKER_HOST", raising=False)
        assert main(["--name", "alice", "--key-dir", str(tmp_path), "--broker-port", "1"]) == 1
