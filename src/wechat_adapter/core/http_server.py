"""
HTTP 服务端

负责:
    - GET  {path}:      微信服务器配置时的 URL 验证（原样返回 echostr）
    - POST {path}:      接收微信推送的消息，交给 WeChatAdapter 处理
    - GET  /api/health: 健康检查接口

异步模式下验签与解析在请求内完成，机器人逻辑与消息发送放到后台任务，
HTTP 响应立即返回空 200，避免微信 5 秒超时重试。
"""

import asyncio
import logging
from typing import Optional

from aiohttp import web

from wechat_adapter_protocol import (
    ArgumentError,
    AuthenticationError,
    MalformedEnvelopeError,
    SecretInfo,
    verify_signature,
)
from .adapter import SUCCESS_BODY, BotLogic, WeChatAdapter

logger = logging.getLogger("wechat-adapter")


class HttpServer:
    """微信 webhook 服务端，搭配 WeChatAdapter 使用"""

    def __init__(
        self,
        adapter: WeChatAdapter,
        logic: BotLogic,
        *,
        host: str = "0.0.0.0",
        port: int = 8080,
        path: str = "/api/messages",
    ):
        self.adapter = adapter
        self.logic = logic
        self.host = host
        self.port = port
        self.path = path
        self._runner: Optional[web.AppRunner] = None
        self._tasks: set[asyncio.Task] = set()

    # -------- 后台任务 --------

    def _spawn_task(self, coro) -> asyncio.Task:
        """创建后台任务并自动管理生命周期"""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_turn(self, request, encrypted: bool, secret_info: SecretInfo):
        """在后台执行一轮对话，异常只记录日志"""
        try:
            await self.adapter.process_wechat_request(
                request, self.logic, encrypted=encrypted, secret_info=secret_info
            )
        except Exception:
            logger.exception("处理消息 %s 时出错", request.msg_id or request.msg_type)

    # -------- HTTP 路由 --------

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(self.path, self._handle_verify)
        app.router.add_post(self.path, self._handle_message)
        app.router.add_get("/api/health", self._handle_health)
        return app

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /api/health — 返回服务运行状态"""
        return web.json_response({
            "ok": True,
            "passive_response": self.adapter.passive_response,
            "pending_turns": len(self._tasks),
        })

    async def _handle_verify(self, request: web.Request) -> web.Response:
        """GET — 微信服务器 URL 验证，签名正确时原样返回 echostr"""
        q = request.query
        if not verify_signature(
            q.get("signature", ""), q.get("timestamp", ""), q.get("nonce", ""),
            self.adapter.settings.token,
        ):
            logger.warning("URL 验证失败: %s", request.remote)
            return web.Response(status=401, text="invalid signature")
        return web.Response(text=q.get("echostr", ""))

    async def _handle_message(self, request: web.Request) -> web.Response:
        """
        POST — 微信消息推送

        查询参数: signature, timestamp, nonce, openid
                  安全模式下另有 encrypt_type=aes, msg_signature
        """
        body = await request.text()
        secret_info = SecretInfo.from_query(request.query)

        try:
            if self.adapter.passive_response:
                reply = await self.adapter.process_activity(body, secret_info, self.logic)
                if reply == SUCCESS_BODY:
                    return web.Response(text=reply)
                return web.Response(text=reply or "", content_type="application/xml")

            message, encrypted = self.adapter.parse_request(body, secret_info)
        except AuthenticationError as e:
            return web.Response(status=401, text=str(e))
        except (MalformedEnvelopeError, ArgumentError) as e:
            logger.warning("无法解析的请求: %s", e)
            return web.Response(status=400, text=str(e))

        secret_info = self.adapter.complete_secret_info(secret_info)
        self._spawn_task(self._run_turn(message, encrypted, secret_info))
        return web.Response(status=200)

    # -------- 启停 --------

    async def start(self):
        """启动 HTTP 服务"""
        app = self.create_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("HTTP 服务端已启动: http://%s:%d%s", self.host, self.port, self.path)

    async def stop(self):
        """停止服务，等待进行中的后台任务结束"""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("HTTP 服务端已停止")
