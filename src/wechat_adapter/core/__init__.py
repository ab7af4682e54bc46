from .adapter import BotLogic, WeChatAdapter
from .http_server import HttpServer
from .mapper import WeChatMessageMapper

__all__ = ["BotLogic", "WeChatAdapter", "HttpServer", "WeChatMessageMapper"]
