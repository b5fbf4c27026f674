import base64
import threading

import pytest
from nacl.public import PrivateKey

from keybridge.browser import DecryptionFailed, InvalidKey, NonceReuse
from keybridge.browser.channel import (
    NonceWindow,
    SecureChannel,
    get_base64_from_key,
    increment_nonce,
    serialize_message,
)

PUBLICKEY = "UIIPObeoya1G8g1M5omgyoPR/j1mR1HlYHu0wHCgMhA="
SECRETKEY = "B8ei4ZjQJkWzZU2SK/tBsrYRwp+6ztEMf5GFQV+i0yI="
SERVERPUBLICKEY = "lKnbLhrVCOqzEjuNoUz1xj9EZlz8xeO4miZBvLrUPVQ="
SERVERSECRETKEY = "tbPQcghxfOgbmsnEqG2qMIj1W2+nh+lOJcNsHncaz1Q="
NONCE = "zBKdvTjL5bgWaKMCTut/8soM/uoMrFoZ"
CIPHERTEXT = "+zjtntnk4rGWSl/Ph7Vqip/swvgeupk4lNgHEm2OO3ujNr0OMz6eQtGwjtsj+/rP"


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


@pytest.fixture
def server() -> SecureChannel:
    channel = SecureChannel()
    channel.load_session(SERVERPUBLICKEY, SERVERSECRETKEY, PUBLICKEY, NONCE)
    return channel


@pytest.fixture
def peers():
    """A server channel after handshake and the matching client channel."""
    client_key = PrivateKey.generate()
    server = SecureChannel()
    server_public = server.handshake(_b64(bytes(client_key.public_key)), NONCE, "testClient")
    client = SecureChannel()
    client.load_session(_b64(bytes(client_key.public_key)), _b64(bytes(client_key)), server_public)
    return server, client


def test_handshake_returns_fresh_public_key():
    channel = SecureChannel()
    public_key = channel.handshake(PUBLICKEY, NONCE, "testClient")

    assert public_key != PUBLICKEY
    assert len(base64.b64decode(public_key)) == 32
    assert channel.session.nonce == NONCE
    assert channel.session.client_id == "testClient"


def test_handshake_rotates_keys():
    channel = SecureChannel()
    first = channel.handshake(PUBLICKEY, NONCE)
    second = channel.handshake(PUBLICKEY, NONCE)
    assert first != second
    assert channel.public_key == second


@pytest.mark.parametrize(
    "public_key, nonce",
    [
        ("not base64!", NONCE),
        (_b64(bytes(31)), NONCE),
        (None, NONCE),
        (PUBLICKEY, _b64(bytes(23))),
        (PUBLICKEY, ""),
    ],
)
def test_handshake_rejects_malformed_material(public_key, nonce):
    channel = SecureChannel()
    with pytest.raises(InvalidKey):
        channel.handshake(public_key, nonce)
    assert channel.session is None


def test_failed_handshake_keeps_session():
    channel = SecureChannel()
    public_key = channel.handshake(PUBLICKEY, NONCE)
    with pytest.raises(InvalidKey):
        channel.handshake("AAAA", NONCE)
    assert channel.public_key == public_key


def test_encrypt_message_known_answer(server):
    assert server.encrypt_message({"action": "test-action"}, NONCE) == CIPHERTEXT


def test_decrypt_message_known_answer(server):
    assert server.decrypt_message(CIPHERTEXT, NONCE) == {"action": "test-action"}


def test_serialize_message_layout():
    assert serialize_message({"action": "test-action"}) == b'{\n    "action": "test-action"\n}\n'


def test_get_base64_from_key():
    assert get_base64_from_key(bytes(range(32))) == "AAECAwQFBgcICQoLDA0ODxAREhMUFRYXGBkaGxwdHh8="


def test_increment_nonce():
    assert increment_nonce(NONCE) == "zRKdvTjL5bgWaKMCTut/8soM/uoMrFoZ"
    assert SecureChannel.increment_nonce(NONCE) == "zRKdvTjL5bgWaKMCTut/8soM/uoMrFoZ"


def test_increment_nonce_carry_and_wrap():
    assert base64.b64decode(increment_nonce(_b64(bytes(24)))) == b"\x01" + bytes(23)
    assert base64.b64decode(increment_nonce(_b64(b"\xff" + bytes(23)))) == b"\x00\x01" + bytes(22)
    assert base64.b64decode(increment_nonce(_b64(b"\xff" * 24))) == bytes(24)


def test_increment_nonce_rejects_wrong_size():
    with pytest.raises(InvalidKey):
        increment_nonce(_b64(bytes(16)))


def test_round_trip(peers):
    server, client = peers
    message = {"action": "get-logins", "url": "https://github.com", "name": "Grüße"}

    ciphertext = client.encrypt_message(message, NONCE)

    assert server.decrypt_message(ciphertext, NONCE) == message


def test_operations_advance_nonce(peers):
    server, client = peers
    ciphertext = client.encrypt_message({"action": "ping"}, NONCE)
    assert client.session.nonce == increment_nonce(NONCE)

    server.decrypt_message(ciphertext, NONCE)
    assert server.session.nonce == increment_nonce(NONCE)


def test_decrypt_with_other_nonce_fails(peers):
    server, client = peers
    ciphertext = client.encrypt_message({"action": "ping"}, NONCE)

    with pytest.raises(DecryptionFailed):
        server.decrypt_message(ciphertext, increment_nonce(NONCE))


def test_decrypt_tampered_ciphertext_fails(peers):
    server, client = peers
    raw = bytearray(base64.b64decode(client.encrypt_message({"action": "ping"}, NONCE)))
    raw[-1] ^= 0x01

    with pytest.raises(DecryptionFailed):
        server.decrypt_message(_b64(bytes(raw)), NONCE)


def test_decrypt_with_wrong_peer_key_fails(peers):
    server, _ = peers
    stranger_key = PrivateKey.generate()
    stranger = SecureChannel()
    stranger.load_session(
        _b64(bytes(stranger_key.public_key)), _b64(bytes(stranger_key)), server.public_key)

    ciphertext = stranger.encrypt_message({"action": "ping"}, NONCE)

    with pytest.raises(DecryptionFailed):
        server.decrypt_message(ciphertext, NONCE)


def test_replayed_message_is_rejected(peers):
    server, client = peers
    ciphertext = client.encrypt_message({"action": "ping"}, NONCE)
    server.decrypt_message(ciphertext, NONCE)

    with pytest.raises(DecryptionFailed):
        server.decrypt_message(ciphertext, NONCE)


def test_encrypt_refuses_nonce_reuse(peers):
    _, client = peers
    client.encrypt_message({"action": "ping"}, NONCE)

    with pytest.raises(NonceReuse):
        client.encrypt_message({"action": "pong"}, NONCE)


@pytest.mark.parametrize("ciphertext, nonce", [("%%%", NONCE), (CIPHERTEXT, "short"), (None, NONCE)])
def test_malformed_envelope_fails_to_decrypt(server, ciphertext, nonce):
    with pytest.raises(DecryptionFailed):
        server.decrypt_message(ciphertext, nonce)


def test_non_json_payload_fails(peers):
    server, client = peers
    ciphertext = client.encrypt(b"not json", NONCE)
    with pytest.raises(DecryptionFailed):
        server.decrypt_message(ciphertext, NONCE)


def test_no_session():
    channel = SecureChannel()
    with pytest.raises(DecryptionFailed):
        channel.decrypt_message(CIPHERTEXT, NONCE)
    with pytest.raises(InvalidKey):
        channel.encrypt_message({"action": "ping"}, NONCE)


def test_errors_do_not_leak_material(server):
    with pytest.raises(DecryptionFailed) as exc:
        server.decrypt_message(CIPHERTEXT[::-1], NONCE)
    text = str(exc.value)
    assert NONCE not in text
    assert CIPHERTEXT[::-1] not in text
    assert SERVERSECRETKEY not in repr(server.session)


def test_close_discards_session(server):
    server.close()
    assert server.session is None
    assert server.public_key is None


def test_concurrent_encryption_uses_each_nonce_once(peers):
    _, client = peers
    nonces = [_b64(i.to_bytes(24, "little")) for i in range(1, 33)]
    results = []

    def worker(nonce):
        results.append(client.encrypt_message({"action": "ping"}, nonce))

    threads = [threading.Thread(target=worker, args=(n,)) for n in nonces]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == len(nonces)
    assert len(set(results)) == len(nonces)
    assert len(client.session.encrypt_nonces) == len(nonces)


def test_nonce_window_evicts_oldest():
    window = NonceWindow(capacity=3)
    for i in range(4):
        window.add(bytes([i]) * 24)

    assert len(window) == 3
    assert bytes([0]) * 24 not in window
    assert bytes([3]) * 24 in window


def test_nonce_window_refreshes_on_reuse():
    window = NonceWindow(capacity=2)
    window.add(b"a" * 24)
    window.add(b"b" * 24)
    window.add(b"a" * 24)
    window.add(b"c" * 24)

    assert b"a" * 24 in window
    assert b"b" * 24 not in window


def test_session_nonce_tracking_is_bounded(peers):
    _, client = peers
    client.session.encrypt_nonces = NonceWindow(capacity=8)

    for i in range(1, 21):
        client.encrypt_message({"action": "ping"}, _b64(i.to_bytes(24, "little")))

    assert len(client.session.encrypt_nonces) == 8
    with pytest.raises(NonceReuse):
        client.encrypt_message({"action": "ping"}, _b64((20).to_bytes(24, "little")))
