import hashlib

from helpers import NONCE, TIMESTAMP, TOKEN
from wechat_adapter_protocol import compute_signature, verify_message_signature, verify_signature


def _expected(*parts: str) -> str:
    return hashlib.sha1("".join(sorted(parts)).encode("utf-8")).hexdigest()


def test_compute_signature_sorts_before_hashing() -> None:
    assert compute_signature("b", "c", "a") == _expected("a", "b", "c")
    assert compute_signature(TOKEN, TIMESTAMP, NONCE) == compute_signature(NONCE, TOKEN, TIMESTAMP)


def test_verify_signature_ok() -> None:
    signature = _expected(TOKEN, TIMESTAMP, NONCE)
    assert verify_signature(signature, TIMESTAMP, NONCE, TOKEN) is True


def test_verify_signature_is_order_insensitive() -> None:
    signature = _expected("a", "b", "c")
    assert verify_signature(signature, "a", "b", "c") == verify_signature(signature, "c", "b", "a")


def test_verify_signature_accepts_uppercase_hex() -> None:
    signature = _expected(TOKEN, TIMESTAMP, NONCE).upper()
    assert verify_signature(signature, TIMESTAMP, NONCE, TOKEN) is True


def test_tampering_any_input_fails() -> None:
    signature = _expected(TOKEN, TIMESTAMP, NONCE)
    assert verify_signature("bad", TIMESTAMP, NONCE, TOKEN) is False
    assert verify_signature(signature, "1700000001", NONCE, TOKEN) is False
    assert verify_signature(signature, TIMESTAMP, "other", TOKEN) is False
    assert verify_signature(signature, TIMESTAMP, NONCE, "other-token") is False


def test_malformed_inputs_return_false() -> None:
    signature = _expected(TOKEN, TIMESTAMP, NONCE)
    assert verify_signature(None, TIMESTAMP, NONCE, TOKEN) is False  # type: ignore[arg-type]
    assert verify_signature(signature, "", NONCE, TOKEN) is False
    assert verify_signature(signature, TIMESTAMP, NONCE, "") is False
    assert verify_signature(signature, 1700000000, NONCE, TOKEN) is False  # type: ignore[arg-type]
    assert verify_signature("签名", TIMESTAMP, NONCE, TOKEN) is False


def test_verify_message_signature_includes_ciphertext() -> None:
    encrypt = "Y2lwaGVydGV4dA=="
    msg_signature = _expected(TOKEN, TIMESTAMP, NONCE, encrypt)
    assert verify_message_signature(msg_signature, TIMESTAMP, NONCE, TOKEN, encrypt) is True
    assert verify_message_signature(msg_signature, TIMESTAMP, NONCE, TOKEN, encrypt + "x") is False
    assert verify_message_signature(msg_signature, TIMESTAMP, NONCE, TOKEN, "") is False
