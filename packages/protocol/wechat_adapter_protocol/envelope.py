"""
微信消息信封编解码

负责:
    - XML 解析: 将信封 XML 解析为字典（明文与解密后的内容共用同一套规则）
    - 解密: 安全模式下 Encrypt 字段的 AES-256-CBC 解密与完整性校验
    - 加密: 被动回复时生成加密信封及 msg_signature

密文明文布局:
    16 字节随机串 | 4 字节网络序 XML 长度 | XML | AppId
"""

import base64
import binascii
import os
import struct
import time
import uuid
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Optional

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import ArgumentError, AuthenticationError, MalformedEnvelopeError
from .models import SecretInfo
from .verification import compute_signature, verify_message_signature

ENCODING_AES_KEY_LENGTH = 43
RANDOM_PREFIX_SIZE = 16
# 微信官方实现按 32 字节分组补位，填充长度取值 1~32
PKCS7_BLOCK_SIZE = 32


# -------- XML --------

def _element_to_value(el: ET.Element) -> Any:
    children = list(el)
    if not children:
        return el.text or ""
    return {child.tag: _element_to_value(child) for child in children}


def parse_xml(text: str | bytes) -> dict[str, Any]:
    """
    解析信封 XML，返回根节点下子元素的字典。

    Raises:
        MalformedEnvelopeError: 文档为空或不是合法 XML
    """
    if not text:
        raise MalformedEnvelopeError("Document is empty")
    if isinstance(text, str):
        text = text.encode("utf-8")
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise MalformedEnvelopeError(f"XML 解析失败: {e}") from e
    value = _element_to_value(root)
    if not isinstance(value, dict):
        raise MalformedEnvelopeError("XML 根节点下没有任何字段")
    return value


# -------- 密钥 / 填充 --------

def _aes_key(encoding_aes_key: str) -> bytes:
    if not encoding_aes_key or len(encoding_aes_key) != ENCODING_AES_KEY_LENGTH:
        raise ArgumentError(f"EncodingAESKey 长度必须为 {ENCODING_AES_KEY_LENGTH}")
    try:
        key = base64.b64decode(encoding_aes_key + "=")
    except (binascii.Error, ValueError) as e:
        raise ArgumentError(f"EncodingAESKey 不是合法的 Base64: {e}") from e
    if len(key) != 32:
        raise ArgumentError("EncodingAESKey 解码后不是 32 字节")
    return key


def _cipher(key: bytes) -> Cipher:
    return Cipher(algorithms.AES(key), modes.CBC(key[:16]), backend=default_backend())


def pkcs7_pad(data: bytes, block_size: int = PKCS7_BLOCK_SIZE) -> bytes:
    amount = block_size - len(data) % block_size
    return data + bytes([amount]) * amount


def pkcs7_unpad(data: bytes, block_size: int = PKCS7_BLOCK_SIZE) -> bytes:
    """去除补位，长度越界或补位字节不一致时抛出 MalformedEnvelopeError"""
    if not data:
        raise MalformedEnvelopeError("解密结果为空")
    amount = data[-1]
    if amount < 1 or amount > block_size or amount > len(data):
        raise MalformedEnvelopeError(f"非法的补位长度: {amount}")
    if data[-amount:] != bytes([amount]) * amount:
        raise MalformedEnvelopeError("补位字节不一致")
    return data[:-amount]


# -------- 解密 --------

def decrypt_message(envelope: dict, secret_info: SecretInfo) -> str:
    """
    解密信封中的 Encrypt 字段，返回内层 XML 文本。

    Args:
        envelope:    parse_xml() 得到的外层信封
        secret_info: 已补全 token / encoding_aes_key / app_id 的密钥信息

    Raises:
        AuthenticationError:    msg_signature 不匹配
        MalformedEnvelopeError: 密文、补位、长度或 AppId 校验失败
    """
    encrypted = envelope.get("Encrypt")
    if not encrypted or not isinstance(encrypted, str):
        raise MalformedEnvelopeError("信封中缺少 Encrypt 字段")

    if secret_info.msg_signature and not verify_message_signature(
        secret_info.msg_signature, secret_info.timestamp, secret_info.nonce,
        secret_info.token, encrypted,
    ):
        raise AuthenticationError("msg_signature 校验失败")

    key = _aes_key(secret_info.encoding_aes_key)
    try:
        ciphertext = base64.b64decode(encrypted, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelopeError(f"Encrypt 不是合法的 Base64: {e}") from e
    if not ciphertext or len(ciphertext) % 16:
        raise MalformedEnvelopeError("密文长度不是 AES 分组的整数倍")

    decryptor = _cipher(key).decryptor()
    plain = pkcs7_unpad(decryptor.update(ciphertext) + decryptor.finalize())

    header = RANDOM_PREFIX_SIZE + 4
    if len(plain) < header:
        raise MalformedEnvelopeError("解密结果长度不足")
    (xml_len,) = struct.unpack(">I", plain[RANDOM_PREFIX_SIZE:header])
    if header + xml_len > len(plain):
        raise MalformedEnvelopeError(f"XML 长度字段越界: {xml_len}")

    xml_bytes = plain[header:header + xml_len]
    app_id = plain[header + xml_len:]
    if app_id != secret_info.app_id.encode("utf-8"):
        raise MalformedEnvelopeError("AppId 校验失败")

    try:
        return xml_bytes.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedEnvelopeError(f"内层 XML 不是合法的 UTF-8: {e}") from e


def decrypt_envelope(envelope: dict, secret_info: SecretInfo) -> dict[str, Any]:
    """解密并解析内层 XML"""
    return parse_xml(decrypt_message(envelope, secret_info))


# -------- 加密 --------

@dataclass
class EncryptedEnvelope:
    """加密后的被动回复信封"""
    encrypt: str
    msg_signature: str
    timestamp: str
    nonce: str

    def to_xml(self) -> str:
        root = ET.Element("xml")
        for tag, value in (
            ("Encrypt", self.encrypt),
            ("MsgSignature", self.msg_signature),
            ("TimeStamp", self.timestamp),
            ("Nonce", self.nonce),
        ):
            ET.SubElement(root, tag).text = value
        return ET.tostring(root, encoding="unicode")


def encrypt_message(
    plain_xml: str,
    secret_info: SecretInfo,
    timestamp: Optional[str] = None,
    nonce: Optional[str] = None,
) -> EncryptedEnvelope:
    """
    加密明文 XML 并计算 msg_signature。

    Args:
        plain_xml:   待加密的回复 XML
        secret_info: 已补全的密钥信息
        timestamp:   签名时间戳，默认当前时间
        nonce:       随机串，默认随机生成
    """
    key = _aes_key(secret_info.encoding_aes_key)
    xml_bytes = plain_xml.encode("utf-8")
    plain = (
        os.urandom(RANDOM_PREFIX_SIZE)
        + struct.pack(">I", len(xml_bytes))
        + xml_bytes
        + secret_info.app_id.encode("utf-8")
    )
    encryptor = _cipher(key).encryptor()
    ciphertext = encryptor.update(pkcs7_pad(plain)) + encryptor.finalize()
    encrypted = base64.b64encode(ciphertext).decode("ascii")

    timestamp = timestamp or str(int(time.time()))
    nonce = nonce or uuid.uuid4().hex[:16]
    return EncryptedEnvelope(
        encrypt=encrypted,
        msg_signature=compute_signature(secret_info.token, timestamp, nonce, encrypted),
        timestamp=timestamp,
        nonce=nonce,
    )
