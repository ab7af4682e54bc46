"""
wechat-adapter-protocol — 微信公众平台协议包

定义微信消息格式、通用活动结构以及验签和加解密工具，
适配器服务与其他业务服务共用同一套协议。

安装:
    pip install wechat-adapter

使用:
    from wechat_adapter_protocol import SecretInfo, decrypt_envelope, parse_xml, verify_signature

    info = SecretInfo(signature=..., timestamp=..., nonce=...)
    if verify_signature(info.signature, info.timestamp, info.nonce, token):
        envelope = decrypt_envelope(parse_xml(body), info.with_settings(token, key, app_id))
"""

from .envelope import (
    EncryptedEnvelope,
    decrypt_envelope,
    decrypt_message,
    encrypt_message,
    parse_xml,
)
from .errors import (
    ArgumentError,
    AuthenticationError,
    DeliveryError,
    MalformedEnvelopeError,
    UnsupportedOperationError,
    WeChatAdapterError,
    WeChatApiError,
)
from .models import (
    Activity,
    ActivityTypes,
    Attachment,
    CardAction,
    ChannelAccount,
    ConversationAccount,
    ConversationReference,
    SecretInfo,
    SuggestedActions,
)
from .schema import (
    Article,
    EventRequest,
    EventTypes,
    ImageRequest,
    ImageResponse,
    LinkRequest,
    LocationRequest,
    LocationResponse,
    MenuItem,
    MessageMenu,
    MessageMenuResponse,
    MPNewsResponse,
    MusicResponse,
    NewsResponse,
    NoResponse,
    RawResponse,
    RequestMessage,
    RequestMessageTypes,
    ResponseMessage,
    ResponseMessageTypes,
    SuccessResponse,
    TextRequest,
    TextResponse,
    UnknownRequest,
    UploadMediaResult,
    VideoRequest,
    VideoResponse,
    VoiceRequest,
    VoiceResponse,
    parse_request_message,
)
from .verification import compute_signature, verify_message_signature, verify_signature

__all__ = [
    "Activity", "ActivityTypes", "Attachment", "CardAction", "ChannelAccount",
    "ConversationAccount", "ConversationReference", "SecretInfo", "SuggestedActions",
    "Article", "EventRequest", "EventTypes", "ImageRequest", "ImageResponse",
    "LinkRequest", "LocationRequest", "LocationResponse", "MenuItem", "MessageMenu",
    "MessageMenuResponse", "MPNewsResponse", "MusicResponse", "NewsResponse",
    "NoResponse", "RawResponse", "RequestMessage", "RequestMessageTypes",
    "ResponseMessage", "ResponseMessageTypes", "SuccessResponse", "TextRequest",
    "TextResponse", "UnknownRequest", "UploadMediaResult", "VideoRequest",
    "VideoResponse", "VoiceRequest", "VoiceResponse", "parse_request_message",
    "EncryptedEnvelope", "decrypt_envelope", "decrypt_message", "encrypt_message",
    "parse_xml",
    "ArgumentError", "AuthenticationError", "DeliveryError", "MalformedEnvelopeError",
    "UnsupportedOperationError", "WeChatAdapterError", "WeChatApiError",
    "compute_signature", "verify_message_signature", "verify_signature",
    "WeChatClient",
]


def __getattr__(name: str):
    if name == "WeChatClient":
        from .client import WeChatClient
        return WeChatClient
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
