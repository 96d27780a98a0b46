"""
Restriction policy compiler.

Turns a RestrictionPolicy plus a public key into the exact text of an
authorized_keys entry::

    [options,]key-type base64-key comment

This is the only place authorized_keys text is produced, so every value
that ends up on the line is validated here.
"""

import base64
import binascii
import struct
from typing import Optional, Union, List

from sshdeploy.constants import SUPPORTED_KEY_TYPES
from sshdeploy.exceptions import InvalidPolicy
from sshdeploy.models.credential import PublicKey
from sshdeploy.models.policy import RestrictionPolicy

# Characters that would end the entry or truncate it
LINE_BREAKING_CHARS = ("\n", "\r", "\x00")


def _check_single_line(value: str, what: str) -> None:
    for char in LINE_BREAKING_CHARS:
        if char in value:
            raise InvalidPolicy(
                f"{what} contains a line break or NUL character",
                "It would inject an additional authorized_keys entry",
            )


def _embedded_key_type(raw: bytes) -> Optional[str]:
    """Read the key type name stored at the start of an SSH key blob."""
    if len(raw) < 4:
        return None
    (length,) = struct.unpack(">I", raw[:4])
    if length == 0 or len(raw) < 4 + length:
        return None
    try:
        return raw[4 : 4 + length].decode("ascii")
    except UnicodeDecodeError:
        return None


def parse_public_key(text: str) -> PublicKey:
    """
    Parse an OpenSSH public key (``key-type base64 [comment]``).

    Args:
        text: Public key text, e.g. the content of ``id_ed25519.pub``

    Returns:
        PublicKey

    Raises:
        InvalidPolicy: If the key is malformed or of an unsupported type
    """
    text = text.strip()
    _check_single_line(text, "Public key")

    parts = text.split(None, 2)
    if len(parts) < 2:
        raise InvalidPolicy("Public key must be 'key-type base64-key [comment]'")

    key_type, blob = parts[0], parts[1]
    comment = parts[2] if len(parts) == 3 else ""

    if key_type not in SUPPORTED_KEY_TYPES:
        raise InvalidPolicy(
            f"Unsupported key type '{key_type}'",
            f"Supported: {', '.join(SUPPORTED_KEY_TYPES)}",
        )

    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidPolicy(f"Public key data for '{key_type}' is not valid base64")

    embedded = _embedded_key_type(raw)
    if embedded != key_type:
        raise InvalidPolicy(
            f"Public key declares '{key_type}' but contains '{embedded or 'garbage'}'"
        )

    return PublicKey(key_type=key_type, blob=blob, comment=comment)


def _quote_command(command: str) -> str:
    # sshd only unescapes \" inside a quoted option, so a trailing backslash
    # would escape the closing quote.
    if not command.strip():
        raise InvalidPolicy("Forced command must not be empty")
    _check_single_line(command, "Forced command")
    if command.endswith("\\"):
        raise InvalidPolicy("Forced command must not end with a backslash")
    return '"' + command.replace('"', '\\"') + '"'


def compile_options(policy: RestrictionPolicy) -> List[str]:
    """Build the option list in its fixed order."""
    options = []
    if policy.forced_command is not None:
        options.append(f"command={_quote_command(policy.forced_command)}")
    if policy.forbid_port_forwarding:
        options.append("no-port-forwarding")
    if policy.forbid_agent_forwarding:
        options.append("no-agent-forwarding")
    if policy.forbid_pty:
        options.append("no-pty")
    if policy.forbid_x11:
        options.append("no-X11-forwarding")
    return options


def compile_authorized_key(
    policy: RestrictionPolicy,
    public_key: Union[PublicKey, str],
    comment: Optional[str] = None,
) -> str:
    """
    Compile an authorized_keys line.

    Deterministic: the same policy, key and comment always produce the same
    line.

    Args:
        policy: Restrictions to encode as options
        public_key: PublicKey or its OpenSSH text
        comment: Comment for the entry (defaults to the key's own comment)

    Returns:
        The authorized_keys line, without trailing newline

    Raises:
        InvalidPolicy: If the forced command, comment or key is unsafe
    """
    if isinstance(public_key, str):
        public_key = parse_public_key(public_key)
    else:
        # Re-validate, the dataclass may have been built by hand
        public_key = parse_public_key(str(public_key))

    if comment is None:
        comment = public_key.comment
    comment = comment.strip()
    _check_single_line(comment, "Key comment")

    line = public_key.openssh
    options = compile_options(policy)
    if options:
        line = f"{','.join(options)} {line}"
    if comment:
        line = f"{line} {comment}"
    return line
