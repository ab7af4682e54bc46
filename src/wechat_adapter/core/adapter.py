"""
微信适配器：单次请求的处理流程

    验签 → 解析 / 解密信封 → 映射为通用活动 → 调用机器人逻辑
    → 收集回复 → 映射为微信消息 → 被动回复或通过客服消息接口逐条发送

每次请求的回复缓冲区、信封与活动都只在本次请求内有效，
请求之间唯一共享的是 WeChatClient 中的 access_token 缓存。
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Mapping, Optional, Union

from pydantic import ValidationError

from wechat_adapter_protocol import (
    Activity,
    ActivityTypes,
    ArgumentError,
    AuthenticationError,
    ChannelAccount,
    ConversationAccount,
    ConversationReference,
    DeliveryError,
    MalformedEnvelopeError,
    RequestMessage,
    ResponseMessage,
    ResponseMessageTypes,
    SecretInfo,
    UnsupportedOperationError,
    WeChatClient,
    decrypt_envelope,
    encrypt_message,
    parse_request_message,
    parse_xml,
    verify_signature,
)

from ..models import WeChatSettings
from .mapper import WeChatMessageMapper

logger = logging.getLogger("wechat-adapter")

# 机器人逻辑: 接收入站活动和本轮回复缓冲区，通过向缓冲区追加活动来回复
BotLogic = Callable[[Activity, list[Activity]], Awaitable[None]]

# delay 活动未指定时长时的默认暂停毫秒数
DEFAULT_DELAY_MS = 1000

# 被动回复模式下没有可回复内容时返回给微信的响应体
SUCCESS_BODY = "success"


def _delay_seconds(value) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
        return value / 1000
    return DEFAULT_DELAY_MS / 1000


class WeChatAdapter:
    """微信公众号适配器，负责一次 webhook 请求从验签到发送回复的全过程"""

    def __init__(
        self,
        settings: Union[WeChatSettings, Mapping],
        client: Optional[WeChatClient] = None,
    ):
        """
        Args:
            settings: 适配器配置，构造时校验
            client:   客服消息客户端，不传则按配置创建
        """
        try:
            self.settings = (
                settings if isinstance(settings, WeChatSettings)
                else WeChatSettings.model_validate(dict(settings))
            )
        except ValidationError as e:
            raise ArgumentError(f"适配器配置无效: {e}") from e

        self.client = client or WeChatClient(self.settings.app_id, self.settings.app_secret)
        self.mapper = WeChatMessageMapper(self.client, self.settings.upload_temporary_media)
        self.passive_response = self.settings.passive_response

    # -------- 入口 --------

    async def process_activity(
        self,
        body: Optional[Union[str, bytes]],
        secret_info: Optional[SecretInfo],
        logic: Optional[BotLogic],
    ) -> Optional[str]:
        """
        处理一次微信推送。

        Args:
            body:        请求体 XML
            secret_info: 由查询参数构建的验签信息
            logic:       机器人逻辑

        Returns:
            被动回复模式下返回响应体（明文或加密 XML，无回复时为 "success"），
            异步模式下返回 None

        Raises:
            ArgumentError:          参数缺失
            AuthenticationError:    验签失败
            MalformedEnvelopeError: 信封无法解析或解密
            DeliveryError:          客服消息发送失败
        """
        if logic is None or not callable(logic):
            raise ArgumentError("Bot logic is invalid.")
        request, encrypted = self.parse_request(body, secret_info)
        return await self.process_wechat_request(
            request, logic, encrypted=encrypted, secret_info=self.complete_secret_info(secret_info)
        )

    def parse_request(
        self,
        body: Optional[Union[str, bytes]],
        secret_info: Optional[SecretInfo],
    ) -> tuple[RequestMessage, bool]:
        """
        验签并解析请求体，返回 (入站消息, 是否为加密信封)。

        验签失败时不会进行任何解密。
        """
        if body is None:
            raise ArgumentError("Request is invalid.")
        if secret_info is None:
            raise ArgumentError("Secret information is invalid.")

        if not verify_signature(
            secret_info.signature, secret_info.timestamp, secret_info.nonce, self.settings.token
        ):
            logger.warning("签名校验失败: timestamp=%s nonce=%s",
                           secret_info.timestamp, secret_info.nonce)
            raise AuthenticationError("Signature verification failed.")

        envelope = parse_xml(body)
        encrypted = bool(envelope.get("Encrypt"))
        if encrypted:
            if not self.settings.encoding_aes_key:
                raise MalformedEnvelopeError("收到加密消息, 但未配置 EncodingAESKey")
            envelope = decrypt_envelope(envelope, self.complete_secret_info(secret_info))

        return parse_request_message(envelope), encrypted

    async def process_wechat_request(
        self,
        request: RequestMessage,
        logic: BotLogic,
        *,
        encrypted: bool = False,
        secret_info: Optional[SecretInfo] = None,
    ) -> Optional[str]:
        """将已解析的入站消息交给机器人逻辑，并投递收集到的回复"""
        activity = self.mapper.to_activity(request)
        logger.info("收到消息 [%s] %s → %s", request.msg_type,
                    request.from_user_name, activity.type)

        turn_buffer: list[Activity] = []
        await logic(activity, turn_buffer)

        reply = await self._deliver(
            turn_buffer,
            open_id=request.from_user_name,
            bot_id=request.to_user_name,
            passive=self.passive_response,
        )
        if not self.passive_response:
            return None
        return self._passive_body(reply, encrypted, secret_info)

    async def continue_conversation(self, reference: ConversationReference, logic: BotLogic):
        """
        主动发起一轮对话，回复总是通过客服消息接口发送。

        Args:
            reference: 之前保存的会话引用
            logic:     机器人逻辑，收到名为 continueConversation 的事件活动
        """
        if reference is None or not reference.user.id:
            raise ArgumentError("Conversation reference is invalid.")
        if logic is None or not callable(logic):
            raise ArgumentError("Bot logic is invalid.")

        activity = Activity(
            type=ActivityTypes.EVENT.value,
            name="continueConversation",
            id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc),
            from_=ChannelAccount(id=reference.user.id, name=reference.user.name),
            recipient=ChannelAccount(id=reference.bot.id, name=reference.bot.name),
            conversation=ConversationAccount(id=reference.conversation.id or reference.user.id),
            channel_id=reference.channel_id,
        )
        turn_buffer: list[Activity] = []
        await logic(activity, turn_buffer)
        await self._deliver(turn_buffer, open_id=reference.user.id,
                            bot_id=reference.bot.id, passive=False)

    async def get_wechat_access_token(self, force_refresh: bool = False) -> str:
        return await self.client.get_access_token(force_refresh)

    async def update_activity(self, *args, **kwargs):
        """微信不支持修改已发送的消息"""
        raise UnsupportedOperationError("WeChat does not support updating activities.")

    async def delete_activity(self, *args, **kwargs):
        """微信不支持撤回已发送的消息"""
        raise UnsupportedOperationError("WeChat does not support deleting activities.")

    # -------- 内部流程 --------

    def complete_secret_info(self, secret_info: Optional[SecretInfo]) -> Optional[SecretInfo]:
        if secret_info is None:
            return None
        return secret_info.with_settings(
            token=self.settings.token,
            encoding_aes_key=self.settings.encoding_aes_key or "",
            app_id=self.settings.app_id,
        )

    @staticmethod
    def _apply_reference(activity: Activity, open_id: str, bot_id: str):
        """回复未指定收发方时，默认发回给本次请求的用户"""
        if not activity.recipient.id:
            activity.recipient = ChannelAccount(id=open_id)
        if not activity.from_.id:
            activity.from_ = ChannelAccount(id=bot_id)
        if not activity.conversation.id:
            activity.conversation = ConversationAccount(id=open_id)

    async def _deliver(
        self,
        activities: list[Activity],
        *,
        open_id: str,
        bot_id: str,
        passive: bool,
    ) -> Optional[ResponseMessage]:
        """
        按顺序投递本轮回复。

        异步模式下逐条发送并等待完成；被动模式下最后一条可被动回复的消息
        作为返回值，其余只能走客服消息接口的消息照常发送。
        """
        reply: Optional[ResponseMessage] = None
        for activity in activities:
            if activity is None:
                continue
            if activity.type == ActivityTypes.DELAY:
                await asyncio.sleep(_delay_seconds(activity.value))
                continue
            if activity.type not in (ActivityTypes.MESSAGE, ActivityTypes.END_OF_CONVERSATION):
                logger.debug("跳过活动类型 %s", activity.type)
                continue

            self._apply_reference(activity, open_id, bot_id)
            for message in await self.mapper.to_wechat_messages(activity):
                if passive and message.passive:
                    if reply is not None:
                        logger.warning("被动回复只能包含一条消息, 丢弃 %s", reply.msg_type)
                    reply = message
                else:
                    await self._send_message(message, activity.recipient.id)
        return reply

    async def _send_message(self, message: ResponseMessage, open_id: str):
        """根据消息类型调用对应的客服消息接口"""
        kind = message.msg_type
        try:
            if kind == ResponseMessageTypes.TEXT:
                await self.client.send_text(open_id, message.content)
            elif kind == ResponseMessageTypes.IMAGE:
                await self.client.send_image(open_id, message.media_id)
            elif kind == ResponseMessageTypes.VOICE:
                await self.client.send_voice(open_id, message.media_id)
            elif kind == ResponseMessageTypes.VIDEO:
                await self.client.send_video(
                    open_id, message.media_id, message.title,
                    message.description, message.thumb_media_id,
                )
            elif kind == ResponseMessageTypes.MUSIC:
                await self.client.send_music(
                    open_id, message.title, message.description, message.music_url,
                    message.hq_music_url, message.thumb_media_id,
                )
            elif kind == ResponseMessageTypes.NEWS:
                await self.client.send_news(open_id, message.articles)
            elif kind == ResponseMessageTypes.MPNEWS:
                await self.client.send_mpnews(open_id, message.media_id)
            elif kind == ResponseMessageTypes.MESSAGE_MENU:
                await self.client.send_message_menu(open_id, message.message_menu)
            elif kind == ResponseMessageTypes.RAW:
                await self.client.send_message_to_user(message.payload)
            elif kind in (
                ResponseMessageTypes.LOCATION,
                ResponseMessageTypes.SUCCESS,
                ResponseMessageTypes.NO_RESPONSE,
                ResponseMessageTypes.UNKNOWN,
            ):
                return
            else:
                logger.warning("未知的出站消息类型 %s, 已忽略", kind)
                return
        except DeliveryError:
            logger.error("发送 %s 消息给 %s 失败", kind, open_id)
            raise
        except Exception as e:
            logger.error("发送 %s 消息给 %s 失败: %s", kind, open_id, e)
            raise DeliveryError(f"发送 {kind} 消息失败: {e}") from e
        logger.info("已发送 %s 消息给 %s", kind, open_id)

    @staticmethod
    def _passive_body(
        reply: Optional[ResponseMessage],
        encrypted: bool,
        secret_info: Optional[SecretInfo],
    ) -> str:
        if reply is None:
            return SUCCESS_BODY
        xml = reply.to_xml()
        if not encrypted:
            return xml
        if secret_info is None:
            raise ArgumentError("Secret information is invalid.")
        return encrypt_message(xml, secret_info).to_xml()
