"""
Password digests.

New digests are always argon2id PHC strings. Two legacy families imported
from an older account database are accepted for verification only:

``$mssql-sha1$<salt>$<hash>`` and ``$mssql-sha512$<salt>$<hash>``, where
salt and hash are unpadded base64 and ``hash`` is the digest of the password
with a NUL appended after every character, followed by the salt.

A successful legacy check yields :attr:`Verification.MIGRATE`; the caller
must then store a fresh :func:`hash_password` digest.
"""

import hashlib
import hmac
import logging
from base64 import b64decode, b64encode
from enum import Enum
from typing import NamedTuple, Union

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from .exceptions import PasswordAuthenticationFailed

logger = logging.getLogger(__name__)

_hasher = PasswordHasher()

LEGACY_ALGORITHMS = {
    'mssql-sha1': 'sha1',
    'mssql-sha512': 'sha512',
}


class Verification(Enum):
    """Outcome of a successful password check."""

    MATCHED = 'matched'
    MIGRATE = 'migrate'


class CurrentDigest(NamedTuple):
    encoded: str


class LegacyDigest(NamedTuple):
    algorithm: str
    """Name of the :mod:`hashlib` primitive."""

    salt: bytes
    hash: bytes


Digest = Union[CurrentDigest, LegacyDigest]


def _b64decode(value: str) -> bytes:
    return b64decode(value + '=' * (-len(value) % 4), validate=True)


def _b64encode(value: bytes) -> str:
    return b64encode(value).decode('ascii').rstrip('=')


def _null_appended(password: str) -> bytes:
    return ''.join(c + '\u0000' for c in password).encode('utf-8')


def hash_password(password: str) -> str:
    """Generate a secure hash of a password."""
    return _hasher.hash(password)


def encode_legacy_digest(identifier: str, salt: bytes, hashed: bytes) -> str:
    """Encode a legacy digest as a PHC string."""
    if identifier not in LEGACY_ALGORITHMS:
        raise ValueError(f'Unknown legacy digest {identifier}')
    return f'${identifier}${_b64encode(salt)}${_b64encode(hashed)}'


def legacy_hash(algorithm: str, salt: bytes, password: str) -> bytes:
    """Compute a legacy digest of ``password``."""
    hasher = hashlib.new(algorithm)
    hasher.update(_null_appended(password))
    hasher.update(salt)
    return hasher.digest()


def decode_digest(digest: str) -> Digest:
    """
    Decode a stored digest into its tagged variant.

    Raises
    ------
    :class:`PasswordAuthenticationFailed`
        The digest is not a PHC string, or is a malformed legacy digest.

    """
    fields = digest.split('$') if digest else []
    if len(fields) < 3 or fields[0] != '':
        raise PasswordAuthenticationFailed('Unrecognized password digest')
    identifier = fields[1]
    if identifier not in LEGACY_ALGORITHMS:
        return CurrentDigest(digest)
    if len(fields) < 4:
        raise PasswordAuthenticationFailed('Malformed legacy digest')
    try:
        salt, hashed = _b64decode(fields[-2]), _b64decode(fields[-1])
    except ValueError as e:
        raise PasswordAuthenticationFailed('Malformed legacy digest') from e
    return LegacyDigest(LEGACY_ALGORITHMS[identifier], salt, hashed)


def check_password(password: str, digest: str) -> Verification:
    """
    Check a password against a stored digest.

    Returns
    -------
    :class:`Verification`
        ``MIGRATE`` if the digest is a legacy one and must be replaced.

    Raises
    ------
    :class:`PasswordAuthenticationFailed`
        The password does not match, or the digest cannot be used.

    """
    decoded = decode_digest(digest)
    if isinstance(decoded, LegacyDigest):
        computed = legacy_hash(decoded.algorithm, decoded.salt, password)
        if not hmac.compare_digest(computed, decoded.hash):
            raise PasswordAuthenticationFailed('Incorrect password')
        logger.debug('Legacy %s digest matched', decoded.algorithm)
        return Verification.MIGRATE
    try:
        _hasher.verify(decoded.encoded, password)
    except (InvalidHashError, VerificationError) as e:
        raise PasswordAuthenticationFailed('Incorrect password') from e
    return Verification.MATCHED
