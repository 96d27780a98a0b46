"""
Key Registry

Bookkeeping of which public keys are authorized on which targets.
Stored as an append-only log in the database: registering appends an
active record, revoking appends an inactive one. The current state of a
label is its most recent record.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Union

from sqlalchemy.orm import Session, sessionmaker

from sshdeploy.database import KeyRecord
from sshdeploy.exceptions import DuplicateLabel, KeyNotFound
from sshdeploy.models.credential import PublicKey
from sshdeploy.models.policy import RestrictionPolicy
from sshdeploy.services.policy_compiler import (
    compile_authorized_key,
    parse_public_key,
)


@dataclass(frozen=True)
class KeyEntry:
    """A registry record as seen by callers."""

    target: str
    label: str
    public_key: PublicKey
    policy: RestrictionPolicy
    active: bool
    recorded_at: datetime
    sequence: int

    @property
    def authorized_key_line(self) -> str:
        """Compile the authorized_keys line for this entry."""
        return compile_authorized_key(self.policy, self.public_key, self.label)

    def to_dict(self) -> Dict:
        return {
            "target": self.target,
            "label": self.label,
            "key_type": self.public_key.key_type,
            "public_key": self.public_key.openssh,
            "comment": self.public_key.comment,
            "policy": self.policy.to_dict(),
            "active": self.active,
            "recorded_at": self.recorded_at.isoformat(),
        }


def _to_entry(record: KeyRecord) -> KeyEntry:
    return KeyEntry(
        target=record.target,
        label=record.label,
        public_key=PublicKey(
            key_type=record.key_type, blob=record.public_key, comment=record.comment
        ),
        policy=RestrictionPolicy.from_dict(record.policy),
        active=record.active,
        recorded_at=record.created_at,
        sequence=record.id,
    )


class KeyRegistry:
    """
    Append-only registry of authorized keys per target.

    No network side effects: installing a key on the host is done by the
    remote executor.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _latest_records(self, db: Session, target: str) -> Dict[str, KeyRecord]:
        """Replay the log for a target, keeping the newest record per label."""
        latest: Dict[str, KeyRecord] = {}
        records = (
            db.query(KeyRecord)
            .filter(KeyRecord.target == target)
            .order_by(KeyRecord.id)
            .all()
        )
        for record in records:
            latest[record.label] = record
        return latest

    def _append(
        self,
        db: Session,
        target: str,
        label: str,
        public_key: PublicKey,
        policy: RestrictionPolicy,
        active: bool,
    ) -> KeyRecord:
        record = KeyRecord(
            target=target,
            label=label,
            key_type=public_key.key_type,
            public_key=public_key.blob,
            comment=public_key.comment,
            policy=policy.to_dict(),
            active=active,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    def register(
        self,
        target: str,
        credential_label: str,
        public_key: Union[PublicKey, str],
        policy: Optional[RestrictionPolicy] = None,
    ) -> KeyEntry:
        """
        Register a key for a target.

        Args:
            target: Target name
            credential_label: Label identifying the credential
            public_key: PublicKey or OpenSSH public key text
            policy: Restrictions for the key (defaults to all restrictions on)

        Returns:
            The new active entry

        Raises:
            DuplicateLabel: If the label is already active for the target
            InvalidPolicy: If the key or policy cannot be compiled safely
        """
        policy = policy or RestrictionPolicy()
        if isinstance(public_key, str):
            public_key = parse_public_key(public_key)

        # Refuse to record anything that would not compile
        compile_authorized_key(policy, public_key, credential_label)

        db = self.session_factory()
        try:
            current = self._latest_records(db, target).get(credential_label)
            if current is not None and current.active:
                raise DuplicateLabel(target, credential_label)

            record = self._append(
                db, target, credential_label, public_key, policy, active=True
            )
            return _to_entry(record)
        finally:
            db.close()

    def revoke(self, target: str, credential_label: str) -> KeyEntry:
        """
        Mark a key inactive. The earlier records are kept.

        Raises:
            KeyNotFound: If the label is not active for the target
        """
        db = self.session_factory()
        try:
            current = self._latest_records(db, target).get(credential_label)
            if current is None or not current.active:
                raise KeyNotFound(target, credential_label)

            entry = _to_entry(current)
            record = self._append(
                db,
                target,
                credential_label,
                entry.public_key,
                entry.policy,
                active=False,
            )
            return _to_entry(record)
        finally:
            db.close()

    def list(self, target: str) -> List[KeyEntry]:
        """Active entries for a target in registration order."""
        db = self.session_factory()
        try:
            latest = self._latest_records(db, target)
            active = [record for record in latest.values() if record.active]
            return [_to_entry(record) for record in sorted(active, key=lambda r: r.id)]
        finally:
            db.close()

    def get(self, target: str, credential_label: str) -> Optional[KeyEntry]:
        """Get the active entry for a label, if any."""
        for entry in self.list(target):
            if entry.label == credential_label:
                return entry
        return None

    def is_known(self, target: str, credential_label: str) -> bool:
        """Check if the label was ever registered for the target."""
        db = self.session_factory()
        try:
            return credential_label in self._latest_records(db, target)
        finally:
            db.close()

    def history(self, target: Optional[str] = None) -> List[KeyEntry]:
        """Every record, oldest first."""
        db = self.session_factory()
        try:
            query = db.query(KeyRecord)
            if target:
                query = query.filter(KeyRecord.target == target)
            return [_to_entry(record) for record in query.order_by(KeyRecord.id).all()]
        finally:
            db.close()

    def targets(self) -> List[str]:
        """Targets with at least one record."""
        db = self.session_factory()
        try:
            rows = db.query(KeyRecord.target).distinct().order_by(KeyRecord.target).all()
            return [row[0] for row in rows]
        finally:
            db.close()

    def authorized_keys(self, target: str) -> List[str]:
        """Compiled authorized_keys lines for all active entries."""
        return [entry.authorized_key_line for entry in self.list(target)]
