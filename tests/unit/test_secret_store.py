"""Unit tests for secret stores and credential handles."""

import base64

import pytest

from sshdeploy.exceptions import ConfigurationError, CredentialUnavailable
from sshdeploy.models.credential import Credential
from sshdeploy.services.secret_store import (
    DotenvSecretStore,
    EnvSecretStore,
    create_secret_store,
)

from tests.conftest import PRIVATE_KEY


class TestEnvSecretStore:
    """Test environment-backed secrets."""

    def test_get_returns_bytes_with_trailing_newline(self):
        store = EnvSecretStore({"DEPLOY_KEY": PRIVATE_KEY.rstrip("\n")})
        assert store.get("DEPLOY_KEY") == PRIVATE_KEY.encode()

    def test_missing_secret(self):
        with pytest.raises(CredentialUnavailable) as exc_info:
            EnvSecretStore({}).get("DEPLOY_KEY")
        assert exc_info.value.kind == "CredentialUnavailable"
        assert "environment" in exc_info.value.context

    def test_empty_secret(self):
        with pytest.raises(CredentialUnavailable):
            EnvSecretStore({"DEPLOY_KEY": ""}).get("DEPLOY_KEY")

    def test_base64_suffix_decoded(self):
        encoded = base64.b64encode(PRIVATE_KEY.encode()).decode()
        store = EnvSecretStore({"DEPLOY_KEY_B64": encoded})
        assert store.get("DEPLOY_KEY_B64") == PRIVATE_KEY.encode()

    def test_invalid_base64(self):
        with pytest.raises(CredentialUnavailable) as exc_info:
            EnvSecretStore({"DEPLOY_KEY_B64": "***"}).get("DEPLOY_KEY_B64")
        assert "***" not in exc_info.value.message

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("SSHDEPLOY_TEST_SECRET", "value")
        assert EnvSecretStore().get("SSHDEPLOY_TEST_SECRET") == b"value\n"


class TestDotenvSecretStore:
    """Test .env-backed secrets."""

    def test_get(self, tmp_path):
        path = tmp_path / "secrets.env"
        path.write_text('DEPLOY_KEY="line one\\nline two"\n')

        assert DotenvSecretStore(path).get("DEPLOY_KEY") == b"line one\nline two\n"

    def test_missing_file(self, tmp_path):
        with pytest.raises(CredentialUnavailable):
            DotenvSecretStore(tmp_path / "nope.env").get("DEPLOY_KEY")


class TestCreateSecretStore:
    """Test store selection from config."""

    def test_env(self):
        assert isinstance(create_secret_store("env"), EnvSecretStore)
        assert isinstance(create_secret_store(""), EnvSecretStore)

    def test_dotenv_relative_to_config(self, tmp_path):
        store = create_secret_store("dotenv:secrets.env", tmp_path)
        assert isinstance(store, DotenvSecretStore)
        assert store.path == tmp_path / "secrets.env"

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            create_secret_store("vault:secret/deploy")


class TestCredential:
    """Test the transient private key handle."""

    def test_release_zeroes_buffer(self, credential):
        buffer = credential.private_key
        credential.release()

        assert credential.is_released
        assert len(buffer) == 0
        assert credential.key_bytes() == b""

    def test_release_overwrites_before_truncating(self):
        buffer = bytearray(b"secret-bytes")
        view_before = []

        class Spy(bytearray):
            def __delitem__(self, key):
                view_before.append(bytes(self))
                super().__delitem__(key)

        credential = Credential("ci", "DEPLOY_KEY", Spy(buffer))
        credential.release()

        assert view_before == [bytes(len(buffer))]

    def test_repr_hides_key(self, credential):
        text = repr(credential)
        assert "PRIVATE KEY" not in text
        assert "loaded" in text
