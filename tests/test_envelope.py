"""信封解析与加解密"""

import base64
import os
import struct

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from helpers import APP_ID, ENCODING_AES_KEY, NONCE, TIMESTAMP, TOKEN, full_secret_info, text_xml
from wechat_adapter_protocol import (
    ArgumentError,
    AuthenticationError,
    MalformedEnvelopeError,
    compute_signature,
    decrypt_envelope,
    decrypt_message,
    encrypt_message,
    parse_xml,
)
from wechat_adapter_protocol.envelope import pkcs7_pad, pkcs7_unpad


def _raw_encrypt(plain: bytes) -> str:
    """不做任何补位直接加密，用于构造非法密文"""
    key = base64.b64decode(ENCODING_AES_KEY + "=")
    encryptor = Cipher(algorithms.AES(key), modes.CBC(key[:16])).encryptor()
    return base64.b64encode(encryptor.update(plain) + encryptor.finalize()).decode("ascii")


def _layout(xml: bytes, app_id: bytes = APP_ID.encode()) -> bytes:
    return os.urandom(16) + struct.pack(">I", len(xml)) + xml + app_id


# -------- XML --------

def test_parse_xml_plain_envelope() -> None:
    envelope = parse_xml(text_xml("你好"))
    assert envelope["MsgType"] == "text"
    assert envelope["Content"] == "你好"
    assert envelope["FromUserName"] == "user1"


def test_parse_xml_nested_elements() -> None:
    envelope = parse_xml(
        "<xml><MsgType>event</MsgType><ScanCodeInfo><ScanType>qrcode</ScanType>"
        "<ScanResult>abc</ScanResult></ScanCodeInfo></xml>"
    )
    assert envelope["ScanCodeInfo"] == {"ScanType": "qrcode", "ScanResult": "abc"}


@pytest.mark.parametrize("body", ["", b"", None])
def test_parse_xml_empty_document(body) -> None:
    with pytest.raises(MalformedEnvelopeError, match="Document is empty"):
        parse_xml(body)


def test_parse_xml_invalid_document() -> None:
    with pytest.raises(MalformedEnvelopeError):
        parse_xml("<xml><Content>unterminated</xml>")


def test_parse_xml_without_fields() -> None:
    with pytest.raises(MalformedEnvelopeError):
        parse_xml("<xml>just text</xml>")


# -------- 补位 --------

def test_pkcs7_pad_aligns_to_block() -> None:
    padded = pkcs7_pad(b"x" * 10)
    assert len(padded) % 16 == 0
    assert pkcs7_unpad(padded) == b"x" * 10


def test_pkcs7_full_block_of_padding() -> None:
    padded = pkcs7_pad(b"y" * 32)
    assert len(padded) == 64
    assert pkcs7_unpad(padded) == b"y" * 32


@pytest.mark.parametrize("data", [
    b"abc" + bytes([0]),            # 补位长度为 0
    b"a" * 40 + bytes([33]),        # 超过 32
    b"a" * 13 + bytes([1, 2, 3]),   # 补位字节不一致
])
def test_pkcs7_unpad_rejects_bad_padding(data: bytes) -> None:
    with pytest.raises(MalformedEnvelopeError):
        pkcs7_unpad(data)


# -------- 加解密 --------

def test_encrypt_then_decrypt_is_identity() -> None:
    info = full_secret_info()
    payload = text_xml("往返测试 round trip")
    envelope = encrypt_message(payload, info, timestamp=TIMESTAMP, nonce=NONCE)

    assert envelope.timestamp == TIMESTAMP
    assert envelope.nonce == NONCE
    assert envelope.msg_signature == compute_signature(TOKEN, TIMESTAMP, NONCE, envelope.encrypt)
    assert decrypt_message({"Encrypt": envelope.encrypt}, info) == payload


def test_encrypted_envelope_xml_round_trip() -> None:
    info = full_secret_info()
    envelope = encrypt_message(text_xml("hi"), info)
    outer = parse_xml(envelope.to_xml())

    assert set(outer) == {"Encrypt", "MsgSignature", "TimeStamp", "Nonce"}
    inner = decrypt_envelope(outer, info)
    assert inner["Content"] == "hi"


def test_decrypt_verifies_msg_signature() -> None:
    info = full_secret_info()
    envelope = encrypt_message(text_xml(), info, timestamp=TIMESTAMP, nonce=NONCE)

    ok = full_secret_info(msg_signature=envelope.msg_signature)
    assert decrypt_envelope({"Encrypt": envelope.encrypt}, ok)["MsgType"] == "text"

    tampered = full_secret_info(msg_signature="0" * 40)
    with pytest.raises(AuthenticationError):
        decrypt_message({"Encrypt": envelope.encrypt}, tampered)


def test_decrypt_rejects_other_app_id() -> None:
    other = full_secret_info().with_settings(TOKEN, ENCODING_AES_KEY, "wx-other-app")
    envelope = encrypt_message(text_xml(), other)
    with pytest.raises(MalformedEnvelopeError, match="AppId"):
        decrypt_message({"Encrypt": envelope.encrypt}, full_secret_info())


def test_decrypt_rejects_inconsistent_padding() -> None:
    plain = _layout(b"<xml><a>1</a></xml>")
    # 补足到 32 字节的整数倍，最后一个字节声明 4 字节补位但前面的补位值不同
    fill = 32 - len(plain) % 32
    if fill < 4:
        fill += 32
    bad = plain + bytes([7]) * (fill - 1) + bytes([4])
    with pytest.raises(MalformedEnvelopeError):
        decrypt_message({"Encrypt": _raw_encrypt(bad)}, full_secret_info())


def test_decrypt_rejects_length_overflow() -> None:
    xml = b"<xml><a>1</a></xml>"
    plain = os.urandom(16) + struct.pack(">I", 10_000) + xml + APP_ID.encode()
    with pytest.raises(MalformedEnvelopeError, match="长度"):
        decrypt_message({"Encrypt": _raw_encrypt(pkcs7_pad(plain))}, full_secret_info())


def test_decrypt_rejects_short_plaintext() -> None:
    with pytest.raises(MalformedEnvelopeError):
        decrypt_message({"Encrypt": _raw_encrypt(pkcs7_pad(b"short"))}, full_secret_info())


@pytest.mark.parametrize("encrypted", ["not base64 !!", "YWJj", ""])
def test_decrypt_rejects_bad_ciphertext(encrypted: str) -> None:
    with pytest.raises(MalformedEnvelopeError):
        decrypt_message({"Encrypt": encrypted}, full_secret_info())


def test_decrypt_with_malformed_inner_xml() -> None:
    info = full_secret_info()
    envelope = encrypt_message("<xml><broken></xml>", info)
    with pytest.raises(MalformedEnvelopeError):
        decrypt_envelope({"Encrypt": envelope.encrypt}, info)


def test_invalid_encoding_aes_key() -> None:
    info = full_secret_info().with_settings(TOKEN, "too-short", APP_ID)
    with pytest.raises(ArgumentError):
        encrypt_message(text_xml(), info)
