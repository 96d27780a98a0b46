"""
Restriction Policy Model

Declarative restrictions attached to an authorized key.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any


@dataclass(frozen=True)
class RestrictionPolicy:
    """Restrictions compiled into the options of an authorized_keys entry."""

    forbid_port_forwarding: bool = True
    forbid_agent_forwarding: bool = True
    forbid_pty: bool = True
    forbid_x11: bool = True
    forced_command: Optional[str] = None

    @property
    def has_forced_command(self) -> bool:
        """Check if the key is locked to a single command."""
        return self.forced_command is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "forbid_port_forwarding": self.forbid_port_forwarding,
            "forbid_agent_forwarding": self.forbid_agent_forwarding,
            "forbid_pty": self.forbid_pty,
            "forbid_x11": self.forbid_x11,
            "forced_command": self.forced_command,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RestrictionPolicy":
        """Create from dictionary (missing flags keep their restrictive default)."""
        data = data or {}
        return cls(
            forbid_port_forwarding=bool(data.get("forbid_port_forwarding", True)),
            forbid_agent_forwarding=bool(data.get("forbid_agent_forwarding", True)),
            forbid_pty=bool(data.get("forbid_pty", True)),
            forbid_x11=bool(data.get("forbid_x11", True)),
            forced_command=data.get("forced_command"),
        )

    def __repr__(self) -> str:
        flags = [
            name
            for name, enabled in (
                ("port", self.forbid_port_forwarding),
                ("agent", self.forbid_agent_forwarding),
                ("pty", self.forbid_pty),
                ("x11", self.forbid_x11),
            )
            if enabled
        ]
        return f"RestrictionPolicy(forbid={','.join(flags) or 'none'}, forced={self.has_forced_command})"
