"""
微信请求签名校验

微信服务器推送消息时在 URL 上附带 signature / timestamp / nonce，
signature = sha1(sorted([token, timestamp, nonce]) 拼接)。
安全模式下另有 msg_signature，参与排序的还包括密文 Encrypt。
"""

import hashlib
import hmac


def compute_signature(*parts: str) -> str:
    """字典序排序后拼接，返回 SHA-1 十六进制摘要"""
    return hashlib.sha1("".join(sorted(parts)).encode("utf-8")).hexdigest()


def _valid(*values) -> bool:
    return all(isinstance(v, str) and v for v in values)


def _equal(expected: str, actual: str) -> bool:
    return hmac.compare_digest(expected.encode("ascii"), actual.lower().encode("utf-8"))


def verify_signature(signature: str, timestamp: str, nonce: str, token: str) -> bool:
    """
    校验请求签名，任何不匹配或非法输入都返回 False，不抛出异常。

    Args:
        signature: 查询参数 signature
        timestamp: 查询参数 timestamp
        nonce:     查询参数 nonce
        token:     公众号后台配置的 Token
    """
    if not _valid(signature, timestamp, nonce, token):
        return False
    expected = compute_signature(token, timestamp, nonce)
    return _equal(expected, signature)


def verify_message_signature(msg_signature: str, timestamp: str, nonce: str,
                             token: str, encrypt: str) -> bool:
    """校验安全模式下的 msg_signature"""
    if not _valid(msg_signature, timestamp, nonce, token, encrypt):
        return False
    expected = compute_signature(token, timestamp, nonce, encrypt)
    return _equal(expected, msg_signature)
