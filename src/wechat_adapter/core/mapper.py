"""
微信消息 ⇄ 通用活动 映射

入站: 每种微信消息都映射为一个 Activity，原始消息保存在 channel_data 中
出站: 一个 Activity 可以映射为 0 条、1 条或多条微信消息，
      每个附件对应一条消息，顺序与附件顺序一致
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from wechat_adapter_protocol import (
    Activity,
    ActivityTypes,
    Article,
    Attachment,
    ChannelAccount,
    ConversationAccount,
    EventRequest,
    EventTypes,
    ImageRequest,
    ImageResponse,
    LinkRequest,
    LocationRequest,
    MenuItem,
    MessageMenu,
    MessageMenuResponse,
    MusicResponse,
    NewsResponse,
    RawResponse,
    RequestMessage,
    ResponseMessage,
    TextRequest,
    TextResponse,
    VideoRequest,
    VideoResponse,
    VoiceRequest,
    VoiceResponse,
)

logger = logging.getLogger("wechat-adapter")

HERO_CARD = "application/vnd.microsoft.card.hero"
THUMBNAIL_CARD = "application/vnd.microsoft.card.thumbnail"
AUDIO_CARD = "application/vnd.microsoft.card.audio"

# 事件 / 未知消息的 value 中不重复携带的公共字段
_COMMON_TAGS = {"ToUserName", "FromUserName", "CreateTime", "MsgType", "MsgId", "Event"}


def _timestamp(create_time: int) -> datetime:
    """CreateTime 缺失或超出平台可表示范围时使用当前时间"""
    if create_time > 0:
        try:
            return datetime.fromtimestamp(create_time, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.debug("CreateTime 超出范围: %s", create_time)
    return datetime.now(timezone.utc)


def _extra_fields(request: RequestMessage) -> dict[str, Any]:
    return {k: v for k, v in request.raw.items() if k not in _COMMON_TAGS}


def _content(attachment: Attachment) -> dict:
    return attachment.content if isinstance(attachment.content, dict) else {}


def _action_value(action: Any) -> str:
    """卡片按钮可以是字典或 CardAction"""
    if isinstance(action, dict):
        value = action.get("value")
    else:
        value = getattr(action, "value", None)
    return value if isinstance(value, str) else ""


def _first_url(items: Any) -> str:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0].get("url", "") or ""
    return ""


class WeChatMessageMapper:
    """在微信消息与通用活动之间转换"""

    def __init__(self, client, upload_temporary_media: bool = False):
        """
        Args:
            client:                 WeChatClient，上传临时素材时使用
            upload_temporary_media: 附件没有 media_id 时是否上传 content_url 换取
        """
        self.client = client
        self.upload_temporary_media = upload_temporary_media

    # -------- 入站 --------

    def to_activity(self, request: RequestMessage) -> Activity:
        """将入站微信消息转换为通用活动，任何消息类型都不会抛出异常"""
        activity = Activity(
            type=ActivityTypes.MESSAGE.value,
            id=request.msg_id or uuid.uuid4().hex,
            timestamp=_timestamp(request.create_time),
            from_=ChannelAccount(id=request.from_user_name),
            recipient=ChannelAccount(id=request.to_user_name),
            conversation=ConversationAccount(id=request.from_user_name),
            channel_data=request,
        )

        if isinstance(request, TextRequest):
            activity.text = request.content
        elif isinstance(request, ImageRequest):
            activity.attachments.append(Attachment(
                content_type="image/*",
                content_url=request.pic_url or None,
                content={"media_id": request.media_id},
            ))
        elif isinstance(request, VoiceRequest):
            activity.text = request.recognition
            activity.attachments.append(Attachment(
                content_type=f"audio/{(request.format or 'amr').lower()}",
                content={"media_id": request.media_id, "format": request.format},
            ))
        elif isinstance(request, VideoRequest):
            activity.attachments.append(Attachment(
                content_type="video/mp4",
                content={
                    "media_id": request.media_id,
                    "thumb_media_id": request.thumb_media_id,
                },
                name=request.msg_type,
            ))
        elif isinstance(request, LocationRequest):
            activity.text = request.label
            activity.entities.append({
                "type": "GeoCoordinates",
                "latitude": request.latitude,
                "longitude": request.longitude,
                "name": request.label,
            })
            activity.value = {"scale": request.scale}
        elif isinstance(request, LinkRequest):
            activity.text = request.url
            activity.attachments.append(Attachment(
                content_type="text/html",
                content_url=request.url or None,
                content={"title": request.title, "description": request.description},
                name=request.title,
            ))
        elif isinstance(request, EventRequest):
            activity.type = ActivityTypes.EVENT.value
            activity.name = request.event
            activity.value = _extra_fields(request)
            if request.event == EventTypes.LOCATION and request.latitude is not None:
                activity.entities.append({
                    "type": "GeoCoordinates",
                    "latitude": request.latitude,
                    "longitude": request.longitude,
                })
        else:
            logger.debug("未知消息类型 %s, 作为事件透传", request.msg_type)
            activity.type = ActivityTypes.EVENT.value
            activity.name = request.msg_type or "unknown"
            activity.value = _extra_fields(request)

        return activity

    # -------- 出站 --------

    async def to_wechat_messages(self, activity: Activity) -> list[ResponseMessage]:
        """
        将机器人回复的活动转换为微信消息列表。

        channel_data 非空时直接转发其中的原生消息，不再做通用映射。
        """
        if activity.channel_data:
            messages = self._from_channel_data(activity.channel_data)
        else:
            messages = []
            if activity.suggested_actions and activity.suggested_actions.actions:
                messages.append(self._menu(activity))
            elif activity.text:
                messages.append(TextResponse(content=activity.text))

            for attachment in activity.attachments:
                message = await self._from_attachment(attachment)
                if message is not None:
                    messages.append(message)

        for message in messages:
            self._stamp(message, activity)
        return messages

    def _from_channel_data(self, channel_data: Any) -> list[ResponseMessage]:
        if isinstance(channel_data, dict) and "msgtype" in channel_data:
            return [RawResponse(payload=channel_data)]
        items = channel_data if isinstance(channel_data, list) else [channel_data]
        if items and all(isinstance(item, ResponseMessage) for item in items):
            return list(items)
        logger.warning("无法识别的 channel_data (%s), 已忽略", type(channel_data).__name__)
        return []

    @staticmethod
    def _stamp(message: ResponseMessage, activity: Activity):
        if not message.to_user_name:
            message.to_user_name = activity.recipient.id
        if not message.from_user_name:
            message.from_user_name = activity.from_.id
        if not message.create_time:
            message.create_time = int(time.time())

    @staticmethod
    def _menu(activity: Activity) -> MessageMenuResponse:
        items = []
        for i, action in enumerate(activity.suggested_actions.actions, start=1):
            item_id = action.value if isinstance(action.value, str) and action.value else str(i)
            items.append(MenuItem(id=item_id, content=action.title or str(action.value or "")))
        return MessageMenuResponse(message_menu=MessageMenu(
            head_content=activity.text,
            items=items,
        ))

    async def _media_id(self, attachment: Attachment, media_type: str) -> Optional[str]:
        """优先使用附件自带的 media_id，否则按配置上传 content_url"""
        media_id = _content(attachment).get("media_id")
        if media_id:
            return media_id
        if self.upload_temporary_media and attachment.content_url:
            result = await self.client.upload_temporary_media(media_type, attachment.content_url)
            return result.media_id
        return None

    @staticmethod
    def _link_text(attachment: Attachment) -> Optional[TextResponse]:
        """无法以媒体形式发送的附件退化为文本链接"""
        url = attachment.content_url
        if not url:
            return None
        content = f"{attachment.name}\n{url}" if attachment.name else url
        return TextResponse(content=content)

    async def _from_attachment(self, attachment: Attachment) -> Optional[ResponseMessage]:
        content_type = (attachment.content_type or "").lower()
        content = _content(attachment)

        if content_type in (HERO_CARD, THUMBNAIL_CARD):
            buttons = content.get("buttons") or [None]
            return NewsResponse(articles=[Article(
                title=content.get("title", ""),
                description=content.get("text") or content.get("subtitle", ""),
                url=_action_value(content.get("tap")) or _action_value(buttons[0]),
                pic_url=_first_url(content.get("images")),
            )])

        if content_type == AUDIO_CARD:
            music_url = _first_url(content.get("media"))
            thumb_media_id = content.get("thumb_media_id", "")
            image_url = (content.get("image") or {}).get("url")
            if not thumb_media_id and self.upload_temporary_media and image_url:
                thumb_media_id = (
                    await self.client.upload_temporary_media("thumb", image_url)
                ).media_id
            return MusicResponse(
                title=content.get("title", ""),
                description=content.get("text") or content.get("subtitle", ""),
                music_url=music_url,
                hq_music_url=music_url,
                thumb_media_id=thumb_media_id,
            )

        if content_type.startswith("image/"):
            media_id = await self._media_id(attachment, "image")
            return ImageResponse(media_id=media_id) if media_id else self._link_text(attachment)

        if content_type.startswith("audio/"):
            media_id = await self._media_id(attachment, "voice")
            return VoiceResponse(media_id=media_id) if media_id else self._link_text(attachment)

        if content_type.startswith("video/"):
            media_id = await self._media_id(attachment, "video")
            if not media_id:
                return self._link_text(attachment)
            return VideoResponse(
                media_id=media_id,
                title=attachment.name,
                description=content.get("description", ""),
                thumb_media_id=content.get("thumb_media_id", ""),
            )

        return self._link_text(attachment)
