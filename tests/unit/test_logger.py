"""Unit tests for the deployment logger."""

from sshdeploy.constants import REDACTED
from sshdeploy.logger import DeployLogger

from tests.conftest import PRIVATE_KEY


class TestDeployLogger:
    """Test log files and redaction."""

    def test_log_file_layout(self, tmp_path):
        logger = DeployLogger("production", "sync", log_dir=tmp_path)
        logger.close("SUCCESS")

        relative = logger.log_path.relative_to(tmp_path)
        assert relative.parts[0] == "production"
        assert relative.name.endswith("_sync.log")

        text = logger.log_path.read_text()
        assert "Target: production" in text
        assert "Status: SUCCESS" in text

    def test_redaction_of_registered_secret(self, tmp_path):
        logger = DeployLogger("production", "sync", log_dir=tmp_path)
        logger.redact(PRIVATE_KEY.encode())

        logger.log(f"dumping {PRIVATE_KEY}")
        logger.log_output(PRIVATE_KEY.splitlines()[1])
        logger.log_error("failed", context=PRIVATE_KEY.splitlines()[2])
        logger.close()

        text = logger.log_path.read_text()
        for line in PRIVATE_KEY.splitlines():
            assert line not in text
        assert REDACTED in text
        assert "Status: FAILED" in text

    def test_short_values_not_redacted(self, tmp_path):
        logger = DeployLogger("production", "sync", log_dir=tmp_path)
        logger.redact("abc")
        assert logger.scrub("abc def") == "abc def"
        logger.close()

    def test_ansi_stripped_from_output(self, tmp_path):
        logger = DeployLogger("production", "run-command", log_dir=tmp_path)
        logger.log_output("\x1b[32mok\x1b[0m")
        logger.close()

        assert "  [stdout] ok" in logger.log_path.read_text()

    def test_context_manager_logs_exception(self, tmp_path):
        try:
            with DeployLogger("production", "sync", log_dir=tmp_path) as logger:
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        text = logger.log_path.read_text()
        assert "boom" in text
        assert "Status: FAILED" in text
