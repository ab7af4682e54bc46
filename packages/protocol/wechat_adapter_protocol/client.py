"""
微信公众平台客服消息客户端

负责:
    - 鉴权: 获取并缓存 access_token，过期前自动刷新
    - 发送: 通过客服消息接口向用户发送文本、图片、语音、视频、音乐、图文、菜单消息
    - 素材: 下载远程文件并上传为临时素材，换取 media_id

依赖:
    pip install aiohttp
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlparse

try:
    import aiohttp
except ImportError:
    raise ImportError(
        "客户端功能需要 aiohttp，请执行: pip install aiohttp"
    ) from None

from .errors import DeliveryError, WeChatApiError
from .schema import Article, MessageMenu, UploadMediaResult

logger = logging.getLogger("wechat-adapter")

# access_token 提前过期的秒数，留出刷新余量
TOKEN_EXPIRY_MARGIN = 300


class WeChatClient:
    """
    微信公众平台 REST 客户端

    用法:
        async with WeChatClient(app_id, app_secret) as client:
            await client.send_text(openid, "你好")
    """

    API_BASE = "https://api.weixin.qq.com"

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        *,
        api_base: Optional[str] = None,
        proxy: Optional[str] = None,
    ):
        """
        Args:
            app_id:     公众号 AppID
            app_secret: 公众号 AppSecret
            api_base:   接口地址，测试时可指向本地服务
            proxy:      出站 HTTP 代理地址（用于 IP 白名单场景）
        """
        self.app_id = app_id
        self.app_secret = app_secret
        self.api_base = (api_base or self.API_BASE).rstrip("/")
        self.proxy = proxy

        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._token_lock = asyncio.Lock()
        self._session: Optional[aiohttp.ClientSession] = None

    # -------- 会话 --------

    async def start(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "WeChatClient":
        await self.start()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    @property
    def _http(self) -> aiohttp.ClientSession:
        """获取 HTTP 会话，未启动时抛出异常"""
        if self._session is None or self._session.closed:
            raise RuntimeError("WeChatClient 尚未启动, 请先调用 start()")
        return self._session

    # -------- access token --------

    async def get_access_token(self, force_refresh: bool = False) -> str:
        """获取 access_token，缓存有效时直接返回，并发刷新只请求一次"""
        async with self._token_lock:
            now = datetime.now(timezone.utc)
            if (
                not force_refresh
                and self._access_token
                and self._token_expires_at
                and now < self._token_expires_at
            ):
                return self._access_token

            async with self._http.get(f"{self.api_base}/cgi-bin/token", params={
                "grant_type": "client_credential",
                "appid": self.app_id,
                "secret": self.app_secret,
            }, proxy=self.proxy) as resp:
                data = await resp.json(content_type=None)

            if "access_token" not in data:
                raise WeChatApiError(
                    int(data.get("errcode", -1)), data.get("errmsg", ""), "/cgi-bin/token"
                )

            self._access_token = data["access_token"]
            self._token_expires_at = now + timedelta(
                seconds=max(int(data.get("expires_in", 7200)) - TOKEN_EXPIRY_MARGIN, 0)
            )
            logger.info("获取 access_token 成功, 有效期至 %s", self._token_expires_at)
            return self._access_token

    # -------- HTTP 调用 --------

    @staticmethod
    def _check(path: str, data: dict) -> dict:
        errcode = int(data.get("errcode", 0) or 0)
        if errcode != 0:
            raise WeChatApiError(errcode, data.get("errmsg", ""), path)
        return data

    async def api_post(self, path: str, body: dict) -> dict:
        """调用微信 POST 接口，errcode 非零时抛出 WeChatApiError"""
        token = await self.get_access_token()
        payload = json.dumps(body, ensure_ascii=False).encode("utf-8")
        try:
            async with self._http.post(
                f"{self.api_base}{path}",
                params={"access_token": token},
                data=payload,
                headers={"Content-Type": "application/json; charset=utf-8"},
                proxy=self.proxy,
            ) as resp:
                text = await resp.text()
                logger.debug("POST %s → %s %s", path, resp.status, text[:200])
        except aiohttp.ClientError as e:
            raise DeliveryError(f"请求 {path} 失败: {e}") from e
        return self._check(path, json.loads(text) if text else {})

    # -------- 客服消息 --------

    async def send_message_to_user(self, body: dict) -> dict:
        """发送完整的客服消息 JSON"""
        return await self.api_post("/cgi-bin/message/custom/send", body)

    async def send_text(self, open_id: str, content: str) -> dict:
        return await self.send_message_to_user({
            "touser": open_id,
            "msgtype": "text",
            "text": {"content": content},
        })

    async def send_image(self, open_id: str, media_id: str) -> dict:
        return await self.send_message_to_user({
            "touser": open_id,
            "msgtype": "image",
            "image": {"media_id": media_id},
        })

    async def send_voice(self, open_id: str, media_id: str) -> dict:
        return await self.send_message_to_user({
            "touser": open_id,
            "msgtype": "voice",
            "voice": {"media_id": media_id},
        })

    async def send_video(self, open_id: str, media_id: str, title: str = "",
                         description: str = "", thumb_media_id: str = "") -> dict:
        return await self.send_message_to_user({
            "touser": open_id,
            "msgtype": "video",
            "video": {
                "media_id": media_id,
                "thumb_media_id": thumb_media_id,
                "title": title,
                "description": description,
            },
        })

    async def send_music(self, open_id: str, title: str, description: str,
                         music_url: str, hq_music_url: str,
                         thumb_media_id: str) -> dict:
        return await self.send_message_to_user({
            "touser": open_id,
            "msgtype": "music",
            "music": {
                "title": title,
                "description": description,
                "musicurl": music_url,
                "hqmusicurl": hq_music_url,
                "thumb_media_id": thumb_media_id,
            },
        })

    async def send_news(self, open_id: str, articles: list[Article]) -> dict:
        """发送图文消息（外链），微信限制最多 1 篇"""
        return await self.send_message_to_user({
            "touser": open_id,
            "msgtype": "news",
            "news": {"articles": [
                {
                    "title": a.title,
                    "description": a.description,
                    "url": a.url,
                    "picurl": a.pic_url,
                }
                for a in articles
            ]},
        })

    async def send_mpnews(self, open_id: str, media_id: str) -> dict:
        return await self.send_message_to_user({
            "touser": open_id,
            "msgtype": "mpnews",
            "mpnews": {"media_id": media_id},
        })

    async def send_message_menu(self, open_id: str, menu: MessageMenu) -> dict:
        return await self.send_message_to_user({
            "touser": open_id,
            "msgtype": "msgmenu",
            "msgmenu": {
                "head_content": menu.head_content,
                "list": [{"id": item.id, "content": item.content} for item in menu.items],
                "tail_content": menu.tail_content,
            },
        })

    # -------- 临时素材 --------

    async def upload_temporary_media(self, media_type: str, url: str) -> UploadMediaResult:
        """
        下载远程文件并上传为临时素材。

        Args:
            media_type: image / voice / video / thumb
            url:        文件地址
        """
        path = "/cgi-bin/media/upload"
        try:
            async with self._http.get(url, proxy=self.proxy) as resp:
                resp.raise_for_status()
                content = await resp.read()
                content_type = resp.content_type
        except aiohttp.ClientError as e:
            raise DeliveryError(f"下载素材失败 {url}: {e}") from e

        filename = urlparse(url).path.rsplit("/", 1)[-1] or f"{media_type}.bin"
        form = aiohttp.FormData()
        form.add_field("media", content, filename=filename, content_type=content_type)

        token = await self.get_access_token()
        try:
            async with self._http.post(
                f"{self.api_base}{path}",
                params={"access_token": token, "type": media_type},
                data=form,
                proxy=self.proxy,
            ) as resp:
                data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise DeliveryError(f"上传素材失败 {url}: {e}") from e

        self._check(path, data)
        logger.info("上传临时素材成功: %s → %s", url, data.get("media_id"))
        return UploadMediaResult(
            type=data.get("type", media_type),
            media_id=data.get("media_id", "") or data.get("thumb_media_id", ""),
            created_at=int(data.get("created_at", 0) or 0),
        )
