"""
微信公众平台消息格式

入站（微信 → 适配器）:
    RequestMessage 及其子类，由解析后的 XML 字典通过 parse_request_message() 构建

出站（适配器 → 微信）:
    ResponseMessage 及其子类，被动回复时序列化为 XML，
    异步模式下由 WeChatClient 转为客服消息接口的 JSON
"""

import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional

from .errors import UnsupportedOperationError


class RequestMessageTypes(str, Enum):
    """入站消息类型（MsgType）"""

    TEXT = "text"
    IMAGE = "image"
    VOICE = "voice"
    VIDEO = "video"
    SHORT_VIDEO = "shortvideo"
    LOCATION = "location"
    LINK = "link"
    EVENT = "event"


class EventTypes(str, Enum):
    """常见事件类型（Event），大小写与微信推送一致"""

    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    SCAN = "SCAN"
    LOCATION = "LOCATION"
    CLICK = "CLICK"
    VIEW = "VIEW"


class ResponseMessageTypes(str, Enum):
    """出站消息类型"""

    TEXT = "text"
    IMAGE = "image"
    VOICE = "voice"
    VIDEO = "video"
    MUSIC = "music"
    NEWS = "news"
    MPNEWS = "mpnews"
    MESSAGE_MENU = "msgmenu"
    LOCATION = "location"
    SUCCESS = "success"
    NO_RESPONSE = "noresponse"
    RAW = "raw"
    UNKNOWN = "unknown"


# -------- 字段解析 --------

def _text(data: dict, tag: str) -> str:
    value = data.get(tag)
    if value is None or isinstance(value, dict):
        return ""
    return str(value)


def _int(data: dict, tag: str) -> int:
    try:
        return int(_text(data, tag) or 0)
    except ValueError:
        return 0


def _float(data: dict, tag: str) -> Optional[float]:
    try:
        raw = _text(data, tag)
        return float(raw) if raw else None
    except ValueError:
        return None


# -------- 入站消息 --------

@dataclass
class RequestMessage:
    """
    入站消息公共字段

    Attributes:
        to_user_name:   公众号原始 id
        from_user_name: 发送者 openid
        create_time:    消息创建时间（秒级时间戳）
        msg_type:       消息类型
        msg_id:         消息 id，事件消息没有
        raw:            解析后的原始字段
    """
    to_user_name: str = ""
    from_user_name: str = ""
    create_time: int = 0
    msg_type: str = ""
    msg_id: str = ""
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class TextRequest(RequestMessage):
    content: str = ""


@dataclass
class ImageRequest(RequestMessage):
    pic_url: str = ""
    media_id: str = ""


@dataclass
class VoiceRequest(RequestMessage):
    media_id: str = ""
    format: str = ""
    recognition: str = ""   # 开通语音识别后才有


@dataclass
class VideoRequest(RequestMessage):
    """视频 / 小视频消息"""
    media_id: str = ""
    thumb_media_id: str = ""


@dataclass
class LocationRequest(RequestMessage):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    scale: int = 0
    label: str = ""


@dataclass
class LinkRequest(RequestMessage):
    title: str = ""
    description: str = ""
    url: str = ""


@dataclass
class EventRequest(RequestMessage):
    event: str = ""
    event_key: str = ""
    ticket: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    precision: Optional[float] = None


@dataclass
class UnknownRequest(RequestMessage):
    """无法识别的消息类型，字段原样保存在 raw 中"""


def _common(data: dict) -> dict[str, Any]:
    return {
        "to_user_name": _text(data, "ToUserName"),
        "from_user_name": _text(data, "FromUserName"),
        "create_time": _int(data, "CreateTime"),
        "msg_type": _text(data, "MsgType"),
        "msg_id": _text(data, "MsgId"),
        "raw": dict(data),
    }


def parse_request_message(data: dict) -> RequestMessage:
    """将解析后的 XML 字典转换为对应的入站消息，未知类型返回 UnknownRequest"""
    common = _common(data)
    msg_type = common["msg_type"]

    if msg_type == RequestMessageTypes.TEXT:
        return TextRequest(**common, content=_text(data, "Content"))
    if msg_type == RequestMessageTypes.IMAGE:
        return ImageRequest(
            **common,
            pic_url=_text(data, "PicUrl"),
            media_id=_text(data, "MediaId"),
        )
    if msg_type == RequestMessageTypes.VOICE:
        return VoiceRequest(
            **common,
            media_id=_text(data, "MediaId"),
            format=_text(data, "Format"),
            recognition=_text(data, "Recognition"),
        )
    if msg_type in (RequestMessageTypes.VIDEO, RequestMessageTypes.SHORT_VIDEO):
        return VideoRequest(
            **common,
            media_id=_text(data, "MediaId"),
            thumb_media_id=_text(data, "ThumbMediaId"),
        )
    if msg_type == RequestMessageTypes.LOCATION:
        return LocationRequest(
            **common,
            latitude=_float(data, "Location_X"),
            longitude=_float(data, "Location_Y"),
            scale=_int(data, "Scale"),
            label=_text(data, "Label"),
        )
    if msg_type == RequestMessageTypes.LINK:
        return LinkRequest(
            **common,
            title=_text(data, "Title"),
            description=_text(data, "Description"),
            url=_text(data, "Url"),
        )
    if msg_type == RequestMessageTypes.EVENT:
        return EventRequest(
            **common,
            event=_text(data, "Event"),
            event_key=_text(data, "EventKey"),
            ticket=_text(data, "Ticket"),
            latitude=_float(data, "Latitude"),
            longitude=_float(data, "Longitude"),
            precision=_float(data, "Precision"),
        )
    return UnknownRequest(**common)


# -------- 出站消息 --------

@dataclass
class Article:
    """图文消息中的单篇文章"""
    title: str = ""
    description: str = ""
    url: str = ""
    pic_url: str = ""


@dataclass
class MenuItem:
    id: str = ""
    content: str = ""


@dataclass
class MessageMenu:
    """菜单消息，用户点击菜单项后以文本消息回传 content"""
    head_content: str = ""
    items: list[MenuItem] = field(default_factory=list)
    tail_content: str = ""


def _sub(parent: ET.Element, tag: str, text: Any) -> ET.Element:
    el = ET.SubElement(parent, tag)
    el.text = "" if text is None else str(text)
    return el


@dataclass
class ResponseMessage:
    """
    出站消息公共字段

    passive 为 True 的类型可以作为被动回复直接写入 HTTP 响应，
    其余类型只能通过客服消息接口发送。
    """
    msg_type: ClassVar[str] = ResponseMessageTypes.UNKNOWN.value
    passive: ClassVar[bool] = False

    to_user_name: str = ""
    from_user_name: str = ""
    create_time: int = 0

    def to_xml(self) -> str:
        """序列化为被动回复 XML"""
        if not self.passive:
            raise UnsupportedOperationError(f"{self.msg_type} 消息不支持被动回复")
        root = ET.Element("xml")
        _sub(root, "ToUserName", self.to_user_name)
        _sub(root, "FromUserName", self.from_user_name)
        _sub(root, "CreateTime", self.create_time or int(time.time()))
        _sub(root, "MsgType", self.msg_type)
        self._fill_xml(root)
        return ET.tostring(root, encoding="unicode")

    def _fill_xml(self, root: ET.Element):
        pass


@dataclass
class TextResponse(ResponseMessage):
    msg_type: ClassVar[str] = ResponseMessageTypes.TEXT.value
    passive: ClassVar[bool] = True
    content: str = ""

    def _fill_xml(self, root: ET.Element):
        _sub(root, "Content", self.content)


@dataclass
class ImageResponse(ResponseMessage):
    msg_type: ClassVar[str] = ResponseMessageTypes.IMAGE.value
    passive: ClassVar[bool] = True
    media_id: str = ""

    def _fill_xml(self, root: ET.Element):
        _sub(ET.SubElement(root, "Image"), "MediaId", self.media_id)


@dataclass
class VoiceResponse(ResponseMessage):
    msg_type: ClassVar[str] = ResponseMessageTypes.VOICE.value
    passive: ClassVar[bool] = True
    media_id: str = ""

    def _fill_xml(self, root: ET.Element):
        _sub(ET.SubElement(root, "Voice"), "MediaId", self.media_id)


@dataclass
class VideoResponse(ResponseMessage):
    msg_type: ClassVar[str] = ResponseMessageTypes.VIDEO.value
    passive: ClassVar[bool] = True
    media_id: str = ""
    title: str = ""
    description: str = ""
    thumb_media_id: str = ""

    def _fill_xml(self, root: ET.Element):
        video = ET.SubElement(root, "Video")
        _sub(video, "MediaId", self.media_id)
        _sub(video, "Title", self.title)
        _sub(video, "Description", self.description)


@dataclass
class MusicResponse(ResponseMessage):
    msg_type: ClassVar[str] = ResponseMessageTypes.MUSIC.value
    passive: ClassVar[bool] = True
    title: str = ""
    description: str = ""
    music_url: str = ""
    hq_music_url: str = ""
    thumb_media_id: str = ""

    def _fill_xml(self, root: ET.Element):
        music = ET.SubElement(root, "Music")
        _sub(music, "Title", self.title)
        _sub(music, "Description", self.description)
        _sub(music, "MusicUrl", self.music_url)
        _sub(music, "HQMusicUrl", self.hq_music_url)
        _sub(music, "ThumbMediaId", self.thumb_media_id)


@dataclass
class NewsResponse(ResponseMessage):
    msg_type: ClassVar[str] = ResponseMessageTypes.NEWS.value
    passive: ClassVar[bool] = True
    articles: list[Article] = field(default_factory=list)

    def _fill_xml(self, root: ET.Element):
        _sub(root, "ArticleCount", len(self.articles))
        articles = ET.SubElement(root, "Articles")
        for article in self.articles:
            item = ET.SubElement(articles, "item")
            _sub(item, "Title", article.title)
            _sub(item, "Description", article.description)
            _sub(item, "PicUrl", article.pic_url)
            _sub(item, "Url", article.url)


@dataclass
class MPNewsResponse(ResponseMessage):
    msg_type: ClassVar[str] = ResponseMessageTypes.MPNEWS.value
    media_id: str = ""


@dataclass
class MessageMenuResponse(ResponseMessage):
    msg_type: ClassVar[str] = ResponseMessageTypes.MESSAGE_MENU.value
    message_menu: MessageMenu = field(default_factory=MessageMenu)


@dataclass
class RawResponse(ResponseMessage):
    """客服消息接口 JSON，原样转发"""
    msg_type: ClassVar[str] = ResponseMessageTypes.RAW.value
    payload: dict = field(default_factory=dict)


@dataclass
class LocationResponse(ResponseMessage):
    """位置回显，不产生任何发送"""
    msg_type: ClassVar[str] = ResponseMessageTypes.LOCATION.value


@dataclass
class SuccessResponse(ResponseMessage):
    msg_type: ClassVar[str] = ResponseMessageTypes.SUCCESS.value


@dataclass
class NoResponse(ResponseMessage):
    msg_type: ClassVar[str] = ResponseMessageTypes.NO_RESPONSE.value


@dataclass
class UploadMediaResult:
    """临时素材上传结果"""
    type: str = ""
    media_id: str = ""
    created_at: int = 0
