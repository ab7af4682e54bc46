"""
WeChat Adapter — 微信公众号 webhook 适配器

把微信推送的消息转换为通用活动交给机器人逻辑，
再把机器人的回复转换为微信消息发送回去。
"""

from .core import BotLogic, HttpServer, WeChatAdapter, WeChatMessageMapper
from .models import AppConfig, WeChatSettings

__all__ = [
    "AppConfig",
    "BotLogic",
    "HttpServer",
    "WeChatAdapter",
    "WeChatMessageMapper",
    "WeChatSettings",
]
