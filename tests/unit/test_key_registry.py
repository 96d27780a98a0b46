"""Unit tests for the key registry."""

import pytest

from sshdeploy.database import KeyRecord
from sshdeploy.exceptions import DuplicateLabel, InvalidPolicy, KeyNotFound
from sshdeploy.models.policy import RestrictionPolicy

from tests.conftest import make_public_key


class TestKeyRegistry:
    """Test register / revoke / list semantics."""

    def test_register_and_list(self, registry, public_key):
        entry = registry.register("production", "ci-2025", public_key)

        assert entry.active
        assert entry.label == "ci-2025"
        assert entry.policy == RestrictionPolicy()
        assert [e.label for e in registry.list("production")] == ["ci-2025"]
        assert registry.list("staging") == []

    def test_list_in_registration_order(self, registry):
        for seed, label in enumerate(["zeta", "alpha", "mid"], start=1):
            registry.register("production", label, make_public_key(seed=seed))

        assert [e.label for e in registry.list("production")] == ["zeta", "alpha", "mid"]

    def test_duplicate_active_label(self, registry, public_key):
        registry.register("production", "ci", public_key)

        with pytest.raises(DuplicateLabel) as exc_info:
            registry.register("production", "ci", make_public_key(seed=2))

        assert exc_info.value.kind == "DuplicateLabel"
        assert exc_info.value.target == "production"

    def test_same_label_on_other_target(self, registry, public_key):
        registry.register("production", "ci", public_key)
        registry.register("staging", "ci", public_key)

        assert len(registry.list("staging")) == 1

    def test_revoke(self, registry, public_key):
        registry.register("production", "ci", public_key)

        revoked = registry.revoke("production", "ci")

        assert not revoked.active
        assert registry.list("production") == []
        assert registry.get("production", "ci") is None
        assert registry.is_known("production", "ci")

    def test_revoke_unknown_label(self, registry):
        with pytest.raises(KeyNotFound):
            registry.revoke("production", "nope")

    def test_revoke_twice(self, registry, public_key):
        registry.register("production", "ci", public_key)
        registry.revoke("production", "ci")

        with pytest.raises(KeyNotFound):
            registry.revoke("production", "ci")

    def test_reregister_after_revoke(self, registry):
        registry.register("production", "ci", make_public_key(seed=1))
        registry.register("production", "other", make_public_key(seed=2))
        registry.revoke("production", "ci")

        entry = registry.register("production", "ci", make_public_key(seed=3))

        assert entry.public_key.blob == make_public_key(seed=3).split()[1]
        assert [e.label for e in registry.list("production")] == ["other", "ci"]

    def test_rotation_overlap(self, registry):
        registry.register("production", "ci-2025", make_public_key(seed=1))
        registry.register("production", "ci-2026", make_public_key(seed=2))

        assert {e.label for e in registry.list("production")} == {"ci-2025", "ci-2026"}

        registry.revoke("production", "ci-2025")
        assert [e.label for e in registry.list("production")] == ["ci-2026"]

    def test_log_is_append_only(self, registry, session_factory, public_key):
        registry.register("production", "ci", public_key)
        registry.revoke("production", "ci")
        registry.register("production", "ci", public_key)

        db = session_factory()
        try:
            records = db.query(KeyRecord).order_by(KeyRecord.id).all()
            assert [r.active for r in records] == [True, False, True]
        finally:
            db.close()

        history = registry.history("production")
        assert [e.active for e in history] == [True, False, True]

    def test_policy_roundtrip_and_compiled_line(self, registry, public_key):
        policy = RestrictionPolicy(forbid_pty=False, forced_command="deploy.sh")
        registry.register("production", "ci", public_key, policy)

        entry = registry.get("production", "ci")

        assert entry.policy == policy
        assert entry.authorized_key_line.startswith('command="deploy.sh",no-port-forwarding,')
        assert registry.authorized_keys("production") == [entry.authorized_key_line]

    def test_unsafe_policy_not_recorded(self, registry, public_key):
        with pytest.raises(InvalidPolicy):
            registry.register(
                "production", "ci", public_key, RestrictionPolicy(forced_command="a\nb")
            )
        assert registry.history("production") == []

    def test_targets(self, registry, public_key):
        registry.register("staging", "ci", public_key)
        registry.register("production", "ci", public_key)
        assert registry.targets() == ["production", "staging"]
