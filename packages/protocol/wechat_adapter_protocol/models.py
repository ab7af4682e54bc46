"""
WeChat Adapter 通用数据结构

机器人逻辑只与这里定义的通用活动（Activity）打交道，
与微信自身的 XML / JSON 格式无关。

所有模型基于标准库 dataclass。
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ActivityTypes(str, Enum):
    """通用活动类型"""

    MESSAGE = "message"
    EVENT = "event"
    DELAY = "delay"                            # 伪活动：发送序列暂停 value 毫秒
    END_OF_CONVERSATION = "endOfConversation"


@dataclass
class ChannelAccount:
    """会话参与方，微信中 id 为用户 openid 或公众号原始 id"""
    id: str = ""
    name: str = ""


@dataclass
class ConversationAccount:
    id: str = ""
    is_group: bool = False


@dataclass
class Attachment:
    """
    消息附件

    Attributes:
        content_type:  MIME 类型或卡片类型（如 image/png、application/vnd.microsoft.card.hero）
        content_url:   附件地址
        content:       附件内容，媒体类附件可在其中携带 media_id
        name:          附件名称
        thumbnail_url: 缩略图地址
    """
    content_type: str
    content_url: Optional[str] = None
    content: Any = None
    name: str = ""
    thumbnail_url: Optional[str] = None


@dataclass
class CardAction:
    """建议操作 / 卡片按钮"""
    type: str = "imBack"
    title: str = ""
    value: Any = None


@dataclass
class SuggestedActions:
    actions: list[CardAction] = field(default_factory=list)


@dataclass
class Activity:
    """
    通用活动，机器人逻辑的输入与输出

    Attributes:
        type:              活动类型，见 ActivityTypes
        text:              文本内容
        attachments:       附件列表，出站时每个附件对应一条微信消息
        suggested_actions: 建议操作，出站时映射为菜单消息
        entities:          附加实体（如地理位置）
        value:             事件 / delay 的附加值
        name:              事件名
        from_:             发送方
        recipient:         接收方
        channel_data:      原生微信消息，非空时出站跳过通用映射直接转发
    """
    type: str = ActivityTypes.MESSAGE.value
    id: str = ""
    timestamp: Optional[datetime] = None
    text: str = ""
    attachments: list[Attachment] = field(default_factory=list)
    suggested_actions: Optional[SuggestedActions] = None
    entities: list[dict] = field(default_factory=list)
    value: Any = None
    name: str = ""
    from_: ChannelAccount = field(default_factory=ChannelAccount)
    recipient: ChannelAccount = field(default_factory=ChannelAccount)
    conversation: ConversationAccount = field(default_factory=ConversationAccount)
    channel_id: str = "wechat"
    channel_data: Any = None

    def create_reply(self, text: str = "") -> "Activity":
        """基于当前活动创建回复，收发双方互换"""
        return Activity(
            type=ActivityTypes.MESSAGE.value,
            id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc),
            text=text,
            from_=ChannelAccount(id=self.recipient.id, name=self.recipient.name),
            recipient=ChannelAccount(id=self.from_.id, name=self.from_.name),
            conversation=ConversationAccount(id=self.conversation.id),
            channel_id=self.channel_id,
        )

    def get_conversation_reference(self) -> "ConversationReference":
        return ConversationReference(
            user=ChannelAccount(id=self.from_.id, name=self.from_.name),
            bot=ChannelAccount(id=self.recipient.id, name=self.recipient.name),
            conversation=ConversationAccount(id=self.conversation.id),
            activity_id=self.id,
            channel_id=self.channel_id,
        )


@dataclass
class ConversationReference:
    """保存下来的会话引用，用于主动发起对话"""
    user: ChannelAccount = field(default_factory=ChannelAccount)
    bot: ChannelAccount = field(default_factory=ChannelAccount)
    conversation: ConversationAccount = field(default_factory=ConversationAccount)
    activity_id: str = ""
    channel_id: str = "wechat"


@dataclass(frozen=True)
class SecretInfo:
    """
    单次请求的验签 / 解密参数

    signature / timestamp / nonce / msg_signature 来自请求的查询参数，
    token / encoding_aes_key / app_id 由适配器配置补全，补全后不再修改。
    """
    signature: str = ""
    timestamp: str = ""
    nonce: str = ""
    msg_signature: Optional[str] = None
    token: str = ""
    encoding_aes_key: str = ""
    app_id: str = ""

    @classmethod
    def from_query(cls, query) -> "SecretInfo":
        """从 URL 查询参数构建"""
        return cls(
            signature=query.get("signature", ""),
            timestamp=query.get("timestamp", ""),
            nonce=query.get("nonce", ""),
            msg_signature=query.get("msg_signature") or None,
        )

    def with_settings(self, token: str, encoding_aes_key: str, app_id: str) -> "SecretInfo":
        return replace(
            self,
            token=token,
            encoding_aes_key=encoding_aes_key or "",
            app_id=app_id,
        )
