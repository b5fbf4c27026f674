"""
Encrypted message channel with the browser extension.

Messages are sealed with libsodium's crypto_box (Curve25519, XSalsa20,
Poly1305) through PyNaCl. All key and nonce material travels as standard
base64. Both peers advance the 24-byte nonce in lock-step with
increment_nonce(): a reply to a request sent under nonce N is sealed under
increment_nonce(N).

One SecureChannel serves one peer. Its state is guarded by a lock, so calls
against the same channel are serialized; separate channels share nothing.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from nacl.exceptions import CryptoError
from nacl.public import Box, PrivateKey, PublicKey

from . import DecryptionFailed, InvalidKey, NonceReuse

logger = logging.getLogger(__name__)

KEY_SIZE = PublicKey.SIZE
NONCE_SIZE = Box.NONCE_SIZE

# Per direction, per session
MAX_TRACKED_NONCES = 4096


def get_base64_from_key(raw: bytes) -> str:
    """Binary to text encoding for every key and nonce on the wire."""
    return base64.b64encode(bytes(raw)).decode('ascii')


def _decode(value: Any, size: int, what: str) -> bytes:
    if not isinstance(value, str) or not value:
        raise InvalidKey(f"Missing {what}")
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidKey(f"Malformed {what}") from None
    if len(raw) != size:
        raise InvalidKey(f"{what.capitalize()} must be {size} bytes")
    return raw


def increment_nonce(nonce: str) -> str:
    """Add one to a base64 nonce read as a little-endian unsigned integer.

    Carry propagates from the first byte upward and wraps modulo 2**192.
    """
    raw = _decode(nonce, NONCE_SIZE, "nonce")
    value = (int.from_bytes(raw, "little") + 1) % (1 << (8 * NONCE_SIZE))
    return get_base64_from_key(value.to_bytes(NONCE_SIZE, "little"))


def serialize_message(message: Dict[str, Any]) -> bytes:
    """JSON layout the extension produces: four-space indent, trailing newline."""
    return (json.dumps(message, indent=4, ensure_ascii=False) + "\n").encode('utf-8')


class NonceWindow:
    """The most recent nonces seen in one direction, oldest evicted first."""

    def __init__(self, capacity: int = MAX_TRACKED_NONCES):
        self.capacity = capacity
        self._seen: OrderedDict = OrderedDict()

    def __contains__(self, nonce: bytes) -> bool:
        return nonce in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def add(self, nonce: bytes) -> None:
        self._seen[nonce] = None
        self._seen.move_to_end(nonce)
        while len(self._seen) > self.capacity:
            self._seen.popitem(last=False)


@dataclass
class SessionState:
    """Key material and nonce bookkeeping for one connected peer."""
    public_key: bytes
    secret_key: bytes
    client_public_key: bytes
    nonce: str
    client_id: Optional[str] = None
    encrypt_nonces: NonceWindow = field(default_factory=NonceWindow, repr=False)
    decrypt_nonces: NonceWindow = field(default_factory=NonceWindow, repr=False)

    @classmethod
    def generate(cls, client_public_key: bytes, nonce: str,
                 client_id: Optional[str] = None) -> 'SessionState':
        private = PrivateKey.generate()
        return cls(
            public_key=bytes(private.public_key),
            secret_key=bytes(private),
            client_public_key=client_public_key,
            nonce=nonce,
            client_id=client_id,
        )

    def box(self) -> Box:
        return Box(PrivateKey(self.secret_key), PublicKey(self.client_public_key))

    def __repr__(self) -> str:
        return f"SessionState(client_id={self.client_id!r})"


class SecureChannel:
    """Session lifecycle plus encrypt/decrypt for one extension peer."""

    def __init__(self):
        self._lock = threading.RLock()
        self._session: Optional[SessionState] = None

    @property
    def session(self) -> Optional[SessionState]:
        return self._session

    @property
    def public_key(self) -> Optional[str]:
        with self._lock:
            return get_base64_from_key(self._session.public_key) if self._session else None

    def handshake(self, peer_public_key: str, nonce: str,
                  client_id: Optional[str] = None) -> str:
        """Start a session with the peer's public key; return our public key.

        Every handshake generates a fresh keypair and replaces any previous
        session. Raises InvalidKey for malformed key or nonce encodings, in
        which case the current session (if any) is left untouched.
        """
        client_key = _decode(peer_public_key, KEY_SIZE, "public key")
        _decode(nonce, NONCE_SIZE, "nonce")
        with self._lock:
            self._session = SessionState.generate(client_key, nonce, client_id)
            logger.debug(f"Started browser session for client {client_id!r}")
            return get_base64_from_key(self._session.public_key)

    def load_session(self, public_key: str, secret_key: str, client_public_key: str,
                     nonce: Optional[str] = None, client_id: Optional[str] = None) -> None:
        """Install known key material instead of generating a keypair."""
        session = SessionState(
            public_key=_decode(public_key, KEY_SIZE, "public key"),
            secret_key=_decode(secret_key, KEY_SIZE, "secret key"),
            client_public_key=_decode(client_public_key, KEY_SIZE, "client public key"),
            nonce=nonce or get_base64_from_key(bytes(NONCE_SIZE)),
            client_id=client_id,
        )
        with self._lock:
            self._session = session

    def close(self) -> None:
        with self._lock:
            self._session = None

    def _require_session(self) -> SessionState:
        if self._session is None:
            raise InvalidKey("No session: client public key not received")
        return self._session

    def encrypt(self, plaintext: bytes, nonce: str) -> str:
        """Seal ``plaintext`` for the peer under ``nonce``; return base64 ciphertext."""
        nonce_raw = _decode(nonce, NONCE_SIZE, "nonce")
        with self._lock:
            session = self._require_session()
            if nonce_raw in session.encrypt_nonces:
                raise NonceReuse("Nonce already used for encryption in this session")
            sealed = session.box().encrypt(plaintext, nonce_raw).ciphertext
            session.encrypt_nonces.add(nonce_raw)
            session.nonce = increment_nonce(nonce)
            return get_base64_from_key(sealed)

    def decrypt(self, ciphertext: str, nonce: str) -> bytes:
        """Open a base64 ciphertext from the peer. Raises DecryptionFailed."""
        try:
            nonce_raw = _decode(nonce, NONCE_SIZE, "nonce")
            sealed = base64.b64decode(ciphertext, validate=True)
        except (InvalidKey, binascii.Error, ValueError, TypeError):
            raise DecryptionFailed("Malformed message envelope") from None
        with self._lock:
            session = self._session
            if session is None:
                raise DecryptionFailed("No session established")
            if nonce_raw in session.decrypt_nonces:
                logger.warning("Rejected message with a replayed nonce")
                raise DecryptionFailed("Nonce already used in this session")
            try:
                plaintext = session.box().decrypt(sealed, nonce_raw)
            except CryptoError:
                raise DecryptionFailed("Message authentication failed") from None
            session.decrypt_nonces.add(nonce_raw)
            session.nonce = increment_nonce(nonce)
            return plaintext

    def encrypt_message(self, message: Dict[str, Any], nonce: str) -> str:
        return self.encrypt(serialize_message(message), nonce)

    def decrypt_message(self, ciphertext: str, nonce: str) -> Dict[str, Any]:
        plaintext = self.decrypt(ciphertext, nonce)
        try:
            message = json.loads(plaintext.decode('utf-8'))
        except (UnicodeDecodeError, ValueError):
            raise DecryptionFailed("Decrypted payload is not JSON") from None
        if not isinstance(message, dict):
            raise DecryptionFailed("Decrypted payload is not a JSON object")
        return message

    increment_nonce = staticmethod(increment_nonce)
    get_base64_from_key = staticmethod(get_base64_from_key)
