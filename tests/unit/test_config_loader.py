"""Unit tests for configuration loading and target validation."""

import pytest

from sshdeploy.constants import DEFAULT_EXCLUDES, DEFAULT_TIMEOUT
from sshdeploy.core.config_loader import ConfigLoader, load_config
from sshdeploy.exceptions import ConfigurationError, TargetNotFoundError
from sshdeploy.models.target import Target


def raw_config(**target_overrides):
    target = {
        "host": "203.0.113.10",
        "user": "deploy",
        "path": "/var/www/app",
        "credential": "DEPLOY_KEY",
        "host_key_fingerprint": "SHA256:abc",
    }
    target.update(target_overrides)
    return {"targets": {"production": target}}


class TestTarget:
    """Test target validation."""

    @pytest.mark.parametrize("user", ["root", "ROOT", "admin", "toor"])
    def test_privileged_user_rejected(self, user):
        with pytest.raises(ConfigurationError) as exc_info:
            Target.from_dict("production", raw_config(user=user)["targets"]["production"])
        assert "privileged" in exc_info.value.message

    def test_user_required(self):
        with pytest.raises(ConfigurationError):
            Target.from_dict("production", raw_config(user="")["targets"]["production"])

    @pytest.mark.parametrize("path", ["", "var/www", "/", "//"])
    def test_path_must_be_absolute_and_not_root(self, path):
        with pytest.raises(ConfigurationError):
            Target.from_dict("production", raw_config(path=path)["targets"]["production"])

    def test_invalid_port(self):
        with pytest.raises(ConfigurationError):
            Target.from_dict("production", raw_config(port=70000)["targets"]["production"])

    def test_credential_label_defaults_to_secret_name(self):
        target = Target.from_dict("production", raw_config()["targets"]["production"])
        assert target.credential_label == "DEPLOY_KEY"

    def test_passphrase_secret_name(self):
        data = raw_config(credential_passphrase="DEPLOY_KEY_PASSPHRASE")["targets"]["production"]
        target = Target.from_dict("production", data)
        assert target.credential_passphrase == "DEPLOY_KEY_PASSPHRASE"
        assert Target.from_dict("production", raw_config()["targets"]["production"]).credential_passphrase is None

    def test_remote_path(self):
        target = Target.from_dict("production", raw_config()["targets"]["production"])
        assert target.remote_path("css/site.css") == "/var/www/app/css/site.css"
        assert target.address == "deploy@203.0.113.10:22"


class TestConfigLoader:
    """Test defaults and validation."""

    def test_defaults_applied(self, tmp_path):
        config = ConfigLoader(raw_config(), tmp_path / "sshdeploy.yml").build()
        target = config.get_target("production")

        assert target.port == 22
        assert target.timeout == DEFAULT_TIMEOUT
        assert target.exclude == DEFAULT_EXCLUDES
        assert config.source == tmp_path

    def test_exclusions_merge_without_duplicates(self):
        raw = raw_config(exclude=["*.map", ".git"])
        raw["defaults"] = {"exclude": ["node_modules"], "timeout": 60, "post_deploy": "./hook.sh"}

        target = ConfigLoader(raw).build().get_target("production")

        assert target.exclude == DEFAULT_EXCLUDES + ["node_modules", "*.map"]
        assert target.timeout == 60
        assert target.post_deploy == "./hook.sh"

    def test_target_overrides_defaults(self):
        raw = raw_config(timeout=10, post_deploy="./own.sh")
        raw["defaults"] = {"timeout": 60, "post_deploy": "./hook.sh"}

        target = ConfigLoader(raw).build().get_target("production")

        assert target.timeout == 10
        assert target.post_deploy == "./own.sh"

    def test_missing_targets(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigLoader({"source": "dist"})
        assert "targets" in exc_info.value.message

    def test_exclude_must_be_list(self):
        with pytest.raises(ConfigurationError):
            ConfigLoader(raw_config(exclude=".git"))

    def test_unknown_target(self):
        config = ConfigLoader(raw_config()).build()
        with pytest.raises(TargetNotFoundError) as exc_info:
            config.get_target("staging")
        assert "production" in exc_info.value.context

    def test_relative_paths_resolved_against_config_dir(self, tmp_path):
        raw = raw_config()
        raw.update({"source": "dist", "state_dir": str(tmp_path / "state")})

        config = ConfigLoader(raw, tmp_path / "sshdeploy.yml").build()

        assert config.source == tmp_path / "dist"
        assert config.log_dir == tmp_path / "state" / "logs"
        assert config.lock_dir == tmp_path / "state" / "locks"
        assert config.database_url.endswith("state.db")


class TestLoadConfig:
    """Test reading sshdeploy.yml."""

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "sshdeploy.yml"
        path.write_text(
            "source: build\n"
            "secret_store: dotenv:secrets.env\n"
            "targets:\n"
            "  production:\n"
            "    host: 203.0.113.10\n"
            "    user: deploy\n"
            "    path: /var/www/app\n"
            "    credential: DEPLOY_KEY\n"
            "    host_key_fingerprint: SHA256:abc\n"
            "    post_deploy: ./restart.sh\n"
        )

        config = load_config(str(path))

        assert config.config_path == path.resolve()
        assert config.secret_store == "dotenv:secrets.env"
        assert config.get_target("production").post_deploy == "./restart.sh"

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = tmp_path / "other.yml"
        path.write_text(
            "targets:\n"
            "  production: {host: h, user: deploy, path: /srv, credential: K}\n"
        )
        monkeypatch.setenv("SSHDEPLOY_CONFIG", str(path))

        assert load_config().target_names == ["production"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(str(tmp_path / "nope.yml"))
        assert "not found" in exc_info.value.message

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "sshdeploy.yml"
        path.write_text("targets: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))
