"""Encrypted backup envelope.

Wire format (JSON, every field lowercase hex)::

    {"salt": ..., "iv": ..., "data": ..., "hmac": ...}

The key is SHA-256 of the passphrase followed by the hex salt. The data is
the UTF-8 plaintext XORed with the key repeated over its length, and the
tag is SHA-256 of key + plaintext. Older writers tagged key + ciphertext;
those files are still accepted. The IV is generated and carried but does
not enter the keystream.

This is an obfuscation with an integrity check, not a vetted cipher.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass

from garden.backup.passphrase import validate_passphrase
from garden.errors import BackupFormatError, BackupIntegrityError

logger = logging.getLogger(__name__)

SALT_BYTES = 16
IV_BYTES = 16

INTEGRITY_MESSAGE = "incorrect passphrase or corrupted backup"


@dataclass
class Envelope:
    salt: bytes
    iv: bytes
    data: bytes
    tag: str

    def to_json(self) -> str:
        return json.dumps(
            {"salt": self.salt.hex(), "iv": self.iv.hex(), "data": self.data.hex(), "hmac": self.tag}
        )


def derive_key(passphrase: str, salt: bytes) -> bytes:
    return hashlib.sha256((passphrase + salt.hex()).encode("utf-8")).digest()


def xor_keystream(data: bytes, key: bytes) -> bytes:
    n = len(key)
    return bytes(b ^ key[i % n] for i, b in enumerate(data))


def integrity_tag(key: bytes, data: bytes) -> str:
    return hashlib.sha256(key + data).hexdigest()


def _hex_field(doc: dict, name: str) -> bytes:
    value = doc.get(name)
    if not isinstance(value, str):
        raise BackupFormatError(f"backup envelope is missing '{name}'")
    try:
        return bytes.fromhex(value)
    except ValueError as e:
        raise BackupFormatError(f"backup envelope field '{name}' is not valid hex") from e


def parse_envelope(text: str | bytes) -> Envelope:
    """Structural checks only; raises BackupFormatError."""
    try:
        doc = json.loads(text)
    except ValueError as e:
        raise BackupFormatError("backup file is not valid JSON") from e
    if not isinstance(doc, dict):
        raise BackupFormatError("backup envelope must be a JSON object")
    salt = _hex_field(doc, "salt")
    iv = _hex_field(doc, "iv")
    data = _hex_field(doc, "data")
    tag = doc.get("hmac")
    if not isinstance(tag, str) or not tag:
        raise BackupFormatError("backup envelope is missing 'hmac'")
    if not salt:
        raise BackupFormatError("backup envelope has an empty salt")
    return Envelope(salt=salt, iv=iv, data=data, tag=tag.lower())


def is_envelope(text: str) -> bool:
    """True if the text parses as an envelope (as opposed to a plain document)."""
    try:
        parse_envelope(text)
    except BackupFormatError:
        return False
    return True


def encrypt(plaintext: str, passphrase: str, salt: bytes | None = None, iv: bytes | None = None) -> str:
    validate_passphrase(passphrase)
    salt = salt if salt is not None else secrets.token_bytes(SALT_BYTES)
    iv = iv if iv is not None else secrets.token_bytes(IV_BYTES)
    raw = plaintext.encode("utf-8")
    key = derive_key(passphrase, salt)
    envelope = Envelope(salt=salt, iv=iv, data=xor_keystream(raw, key), tag=integrity_tag(key, raw))
    return envelope.to_json()


def decrypt(text: str | bytes, passphrase: str, verify: bool = True) -> str:
    """Recover the plaintext JSON.

    With ``verify=False`` the integrity tag is ignored (emergency recovery);
    the result must still be valid JSON.
    """
    validate_passphrase(passphrase)
    envelope = parse_envelope(text)
    key = derive_key(passphrase, envelope.salt)
    raw = xor_keystream(envelope.data, key)

    if verify and not hmac.compare_digest(integrity_tag(key, raw), envelope.tag):
        if hmac.compare_digest(integrity_tag(key, envelope.data), envelope.tag):
            logger.warning("Backup carries a ciphertext integrity tag (older format), accepted")
        else:
            raise BackupIntegrityError(INTEGRITY_MESSAGE)
    elif not verify:
        logger.warning("Decrypting backup without integrity verification")

    try:
        plaintext = raw.decode("utf-8")
        json.loads(plaintext)
    except ValueError as e:
        raise BackupIntegrityError(INTEGRITY_MESSAGE) from e
    return plaintext
