"""Unit tests for the remote executor against the in-memory transport."""

import dataclasses

import pytest

from sshdeploy.constants import AUTHORIZED_KEYS_PATH, AUTHORIZED_KEYS_PERMISSIONS
from sshdeploy.exceptions import (
    InvalidPolicy,
    ManifestUnreadable,
    OperationTimeout,
    TransferFailed,
    UntrustedHost,
)
from sshdeploy.models.plan import SyncAction, SyncOperation, SyncPlan
from sshdeploy.services.remote_executor import RemoteExecutor
from sshdeploy.services.sync_planner import build_local_manifest, plan

from tests.conftest import HOST_FINGERPRINT, OTHER_FINGERPRINT


@pytest.fixture
def executor(transport):
    return RemoteExecutor(transport)


class TestHostVerification:
    """Test pinned host key verification."""

    @pytest.mark.asyncio
    async def test_unpinned_host_rejected_before_credentials(self, executor, transport, target, credential):
        target = dataclasses.replace(target, host_key_fingerprint=None)

        with pytest.raises(UntrustedHost) as exc_info:
            await executor.run_command("true", target, credential)

        assert exc_info.value.kind == "UntrustedHost"
        assert transport.credential_bytes_sent == 0
        assert transport.sessions == []

    @pytest.mark.asyncio
    async def test_mismatched_host_rejected_before_credentials(self, executor, transport, target, credential, source_tree):
        transport.fingerprint = OTHER_FINGERPRINT
        sync_plan = SyncPlan((SyncOperation("app.js", SyncAction.CREATE),))

        with pytest.raises(UntrustedHost) as exc_info:
            await executor.sync(sync_plan, target, credential, source_tree)

        assert exc_info.value.presented == OTHER_FINGERPRINT
        assert exc_info.value.expected == HOST_FINGERPRINT
        assert transport.credential_bytes_sent == 0
        assert transport.operations == []

    @pytest.mark.asyncio
    async def test_fingerprint_padding_ignored(self, executor, transport, target):
        target = dataclasses.replace(target, host_key_fingerprint=HOST_FINGERPRINT + "=")
        host_key = await executor.verify_host(target)
        assert host_key.fingerprint == HOST_FINGERPRINT

    @pytest.mark.asyncio
    async def test_verified_host_receives_credential(self, executor, transport, target, credential):
        await executor.run_command("true", target, credential)
        assert transport.credential_bytes_sent == len(credential.private_key)

    @pytest.mark.asyncio
    async def test_fetch_host_fingerprint_sends_nothing(self, executor, transport, target):
        target = dataclasses.replace(target, host_key_fingerprint=None)

        assert await executor.fetch_host_fingerprint(target) == HOST_FINGERPRINT
        assert transport.credential_bytes_sent == 0


class TestSync:
    """Test sync plan application."""

    @pytest.mark.asyncio
    async def test_end_to_end_update_before_delete(self, executor, transport, target, credential, tmp_path):
        source = tmp_path / "src"
        source.mkdir()
        (source / "app.js").write_text("v2")
        transport.put("/var/www/app/app.js", "v1")
        transport.put("/var/www/app/old.js", "v1")

        remote = await executor.fetch_manifest(target, credential)
        sync_plan = plan(build_local_manifest(source), remote, set())
        assert list(sync_plan) == [
            SyncOperation("app.js", SyncAction.UPDATE),
            SyncOperation("old.js", SyncAction.DELETE),
        ]

        outcome = await executor.sync(sync_plan, target, credential, source)

        assert outcome.is_success
        assert transport.operations == [
            ("upload", "/var/www/app/app.js"),
            ("remove", "/var/www/app/old.js"),
        ]
        assert transport.tree("/var/www/app") == {"app.js": b"v2"}
        assert outcome.bytes_sent == 2

    @pytest.mark.asyncio
    async def test_deletes_run_after_all_transfers(self, executor, transport, target, credential, tmp_path):
        for name in ["b.js", "d.js"]:
            (tmp_path / name).write_text(name)
        sync_plan = SyncPlan(
            (
                SyncOperation("a.js", SyncAction.DELETE),
                SyncOperation("b.js", SyncAction.CREATE),
                SyncOperation("c.js", SyncAction.DELETE),
                SyncOperation("d.js", SyncAction.UPDATE),
            )
        )

        await executor.sync(sync_plan, target, credential, tmp_path)

        assert [op for op, _ in transport.operations] == ["upload", "upload", "remove", "remove"]
        assert [path.rsplit("/", 1)[1] for _, path in transport.operations] == [
            "b.js",
            "d.js",
            "a.js",
            "c.js",
        ]

    @pytest.mark.asyncio
    async def test_failure_stops_before_deletes(self, executor, transport, target, credential, tmp_path):
        for name in ["a.js", "b.js", "c.js"]:
            (tmp_path / name).write_text(name)
        transport.put("/var/www/app/old.js", "old")
        transport.fail_uploads = {"b.js"}

        remote = await executor.fetch_manifest(target, credential)
        sync_plan = plan(build_local_manifest(tmp_path), remote)
        outcome = await executor.sync(sync_plan, target, credential, tmp_path)

        assert not outcome.is_success
        assert isinstance(outcome.error, TransferFailed)
        assert outcome.failed_operation == SyncOperation("b.js", SyncAction.CREATE)
        assert outcome.applied == [SyncOperation("a.js", SyncAction.CREATE)]
        assert "old.js" in transport.tree("/var/www/app")

    @pytest.mark.asyncio
    async def test_missing_local_file_is_transfer_failure(self, executor, target, credential, tmp_path):
        sync_plan = SyncPlan((SyncOperation("vanished.js", SyncAction.CREATE),))

        outcome = await executor.sync(sync_plan, target, credential, tmp_path)

        assert isinstance(outcome.error, TransferFailed)
        assert outcome.applied == []

    @pytest.mark.asyncio
    async def test_empty_plan_opens_no_session(self, executor, transport, target, credential, tmp_path):
        outcome = await executor.sync(SyncPlan(), target, credential, tmp_path)

        assert outcome.is_success
        assert transport.sessions == []

    @pytest.mark.asyncio
    async def test_remote_file_replaced_by_directory(self, executor, transport, target, credential, tmp_path):
        (tmp_path / "docs").mkdir()
        (tmp_path / "docs" / "index.html").write_text("docs")
        transport.put("/var/www/app/docs", "a file")

        remote = await executor.fetch_manifest(target, credential)
        sync_plan = plan(build_local_manifest(tmp_path), remote)
        outcome = await executor.sync(sync_plan, target, credential, tmp_path)

        assert outcome.is_success, outcome.error
        assert transport.operations[:2] == [
            ("remove", "/var/www/app/docs"),
            ("upload", "/var/www/app/docs/index.html"),
        ]
        assert transport.tree("/var/www/app") == {"docs/index.html": b"docs"}

        remote = await executor.fetch_manifest(target, credential)
        assert plan(build_local_manifest(tmp_path), remote).is_empty

    @pytest.mark.asyncio
    async def test_remote_directory_replaced_by_file(self, executor, transport, target, credential, tmp_path):
        (tmp_path / "docs").write_text("now a file")
        transport.put("/var/www/app/docs/guide/a.html", "a")
        transport.put("/var/www/app/docs/b.html", "b")

        remote = await executor.fetch_manifest(target, credential)
        sync_plan = plan(build_local_manifest(tmp_path), remote)
        outcome = await executor.sync(sync_plan, target, credential, tmp_path)

        assert outcome.is_success, outcome.error
        assert transport.operations == [
            ("remove", "/var/www/app/docs/b.html"),
            ("remove", "/var/www/app/docs/guide/a.html"),
            ("rmdir", "/var/www/app/docs/guide"),
            ("rmdir", "/var/www/app/docs"),
            ("upload", "/var/www/app/docs"),
        ]
        assert transport.tree("/var/www/app") == {"docs": b"now a file"}

        remote = await executor.fetch_manifest(target, credential)
        assert plan(build_local_manifest(tmp_path), remote).is_empty

    @pytest.mark.asyncio
    async def test_emptied_directories_removed(self, executor, transport, target, credential, tmp_path):
        (tmp_path / "assets").mkdir()
        (tmp_path / "assets" / "site.css").write_text("css")
        transport.put("/var/www/app/assets/site.css", "css")
        transport.put("/var/www/app/assets/old/logo.png", "png")
        transport.put("/var/www/app/legacy/v1/app.js", "v1")

        remote = await executor.fetch_manifest(target, credential)
        sync_plan = plan(build_local_manifest(tmp_path), remote)
        outcome = await executor.sync(sync_plan, target, credential, tmp_path)

        assert outcome.is_success
        assert "/var/www/app/legacy" not in transport.dirs
        assert "/var/www/app/legacy/v1" not in transport.dirs
        assert "/var/www/app/assets/old" not in transport.dirs
        assert "/var/www/app/assets" in transport.dirs
        assert ("rmdir", "/var/www/app/assets") not in transport.operations

    @pytest.mark.asyncio
    async def test_directory_with_unmanaged_files_kept(self, executor, transport, target, credential, tmp_path):
        transport.put("/var/www/app/uploads/old.txt", "x")
        transport.put("/var/www/app/uploads/photo.jpg", "x")

        remote = await executor.fetch_manifest(target, credential, ["uploads/*.jpg"])
        sync_plan = plan(build_local_manifest(tmp_path), remote, ["uploads/*.jpg"])
        outcome = await executor.sync(sync_plan, target, credential, tmp_path)

        assert outcome.is_success
        assert "/var/www/app/uploads" in transport.dirs
        assert set(transport.tree("/var/www/app")) == {"uploads/photo.jpg"}

    @pytest.mark.asyncio
    async def test_sessions_closed(self, executor, transport, target, credential, source_tree):
        await executor.fetch_manifest(target, credential)
        assert all(session.closed for session in transport.sessions)
        assert transport.active == 0


class TestFetchManifest:
    """Test remote listing."""

    @pytest.mark.asyncio
    async def test_missing_destination_is_empty(self, executor, transport, target, credential):
        transport.root_exists = False
        assert await executor.fetch_manifest(target, credential) == {}

    @pytest.mark.asyncio
    async def test_exclusions_applied_to_relative_paths(self, executor, transport, target, credential):
        transport.put("/var/www/app/.git/config", "x")
        transport.put("/var/www/app/index.html", "x")

        manifest = await executor.fetch_manifest(target, credential, [".git"])
        assert list(manifest) == ["index.html"]

    @pytest.mark.asyncio
    async def test_listing_error_propagates(self, executor, transport, target, credential):
        transport.list_error = ManifestUnreadable("Cannot enumerate remote path '/var/www/app'")
        with pytest.raises(ManifestUnreadable):
            await executor.fetch_manifest(target, credential)


class TestRunCommand:
    """Test single command execution."""

    @pytest.mark.asyncio
    async def test_runs_exactly_one_command(self, executor, transport, target, credential):
        transport.command_result = (0, "migrated\n", "")

        outcome = await executor.run_command("./migrate.sh", target, credential)

        assert outcome.exit_code == 0
        assert outcome.stdout == "migrated\n"
        assert transport.operations == [("run", "./migrate.sh")]
        assert len(transport.sessions) == 1

    @pytest.mark.asyncio
    async def test_non_zero_exit_is_returned(self, executor, transport, target, credential):
        transport.command_result = (3, "", "boom")

        outcome = await executor.run_command("false", target, credential)

        assert outcome.exit_code == 3
        assert not outcome.is_success
        assert outcome.stderr == "boom"

    @pytest.mark.asyncio
    async def test_timeout_aborts_session(self, executor, transport, target, credential):
        transport.command_delay = 5

        with pytest.raises(OperationTimeout) as exc_info:
            await executor.run_command("sleep 5", target, credential, timeout=0.05)

        assert exc_info.value.kind == "Timeout"
        assert transport.sessions[0].aborted
        assert not transport.sessions[0].closed


class TestInstallAuthorizedKey:
    """Test authorized_keys installation."""

    @pytest.mark.asyncio
    async def test_appends_once(self, executor, transport, target, credential):
        transport.text_files[AUTHORIZED_KEYS_PATH] = "ssh-ed25519 AAAAold old"
        line = "no-pty ssh-ed25519 AAAAnew new"

        assert await executor.install_authorized_key(line, target, credential) is True
        assert await executor.install_authorized_key(line, target, credential) is False

        assert transport.text_files[AUTHORIZED_KEYS_PATH] == (
            "ssh-ed25519 AAAAold old\nno-pty ssh-ed25519 AAAAnew new\n"
        )
        assert transport.modes[AUTHORIZED_KEYS_PATH] == AUTHORIZED_KEYS_PERMISSIONS

    @pytest.mark.asyncio
    async def test_multi_line_rejected(self, executor, target, credential):
        with pytest.raises(InvalidPolicy):
            await executor.install_authorized_key("a\nb", target, credential)
