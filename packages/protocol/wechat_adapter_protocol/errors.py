"""
WeChat Adapter 异常定义

调用方可以通过异常类型区分失败原因:
    ArgumentError              — 请求 / 回调 / 密钥信息等参数缺失或非法
    AuthenticationError        — 签名校验失败
    MalformedEnvelopeError     — XML 解析失败、解密失败（填充 / 长度 / AppId 不符）
    UnsupportedOperationError  — 微信不支持的操作（更新 / 撤回已发送消息）
    DeliveryError              — 通过客服消息接口发送失败
"""

from typing import Optional


class WeChatAdapterError(Exception):
    """所有适配器异常的基类"""


class ArgumentError(WeChatAdapterError, ValueError):
    """参数缺失或非法"""


class AuthenticationError(WeChatAdapterError):
    """请求签名校验失败"""


class MalformedEnvelopeError(WeChatAdapterError):
    """消息信封无法解析或解密"""


class UnsupportedOperationError(WeChatAdapterError, NotImplementedError):
    """微信平台不支持的操作"""


class DeliveryError(WeChatAdapterError):
    """向微信发送消息失败"""


class WeChatApiError(DeliveryError):
    """微信接口返回非零 errcode"""

    def __init__(self, errcode: int, errmsg: str = "", path: Optional[str] = None):
        self.errcode = errcode
        self.errmsg = errmsg
        self.path = path
        where = f" ({path})" if path else ""
        super().__init__(f"微信接口错误{where}: errcode={errcode}, errmsg={errmsg}")
