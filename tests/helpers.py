"""测试公共常量与构造函数"""

import base64

from wechat_adapter_protocol import SecretInfo, compute_signature

APP_ID = "wx1234567890abcdef"
TOKEN = "test-token"
# 32 字节密钥的 Base64 去掉末尾 "=" 后正好 43 个字符
ENCODING_AES_KEY = base64.b64encode(bytes(range(32))).decode("ascii").rstrip("=")
TIMESTAMP = "1700000000"
NONCE = "n0nce"


def signed_secret_info(timestamp: str = TIMESTAMP, nonce: str = NONCE, **kwargs) -> SecretInfo:
    """构造一份签名正确的请求参数"""
    return SecretInfo(
        signature=compute_signature(TOKEN, timestamp, nonce),
        timestamp=timestamp,
        nonce=nonce,
        **kwargs,
    )


def full_secret_info(**kwargs) -> SecretInfo:
    return signed_secret_info(**kwargs).with_settings(TOKEN, ENCODING_AES_KEY, APP_ID)


def text_xml(content: str = "hello", from_user: str = "user1", to_user: str = "bot",
             msg_id: str = "10001") -> str:
    return (
        "<xml>"
        f"<ToUserName><![CDATA[{to_user}]]></ToUserName>"
        f"<FromUserName><![CDATA[{from_user}]]></FromUserName>"
        "<CreateTime>1700000000</CreateTime>"
        "<MsgType><![CDATA[text]]></MsgType>"
        f"<Content><![CDATA[{content}]]></Content>"
        f"<MsgId>{msg_id}</MsgId>"
        "</xml>"
    )


def compute_signature_for(timestamp: str = TIMESTAMP, nonce: str = NONCE) -> str:
    return compute_signature(TOKEN, timestamp, nonce)
