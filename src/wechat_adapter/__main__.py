"""
WeChat Adapter 入口脚本

用法:
    python -m wechat_adapter                             # 使用默认配置启动
    python -m wechat_adapter --host 0.0.0.0 --port 9090  # 指定 HTTP 监听地址
    python -m wechat_adapter --config config.yaml        # 指定配置文件
    python -m wechat_adapter --env /path/to/.env         # 指定环境变量文件

启动流程:
    1. 解析命令行参数
    2. 加载 .env 环境变量与 config.yaml
    3. 初始化日志
    4. 创建 WeChatClient（客服消息接口）与 WeChatAdapter
    5. 创建 HttpServer（微信 webhook），内置回显机器人
    6. 运行直到 Ctrl+C 优雅退出
"""

import argparse
import asyncio
import os

from wechat_adapter_protocol import Activity, WeChatClient

from .config import load_env, setup_logging
from .core import HttpServer, WeChatAdapter
from .models import AppConfig


async def echo_bot(activity: Activity, turn_buffer: list[Activity]):
    """默认机器人逻辑：原样回显文本消息"""
    if activity.type == "message" and activity.text:
        turn_buffer.append(activity.create_reply(activity.text))


def parse_args():
    p = argparse.ArgumentParser(
        description="WeChat Adapter — 微信公众号 webhook 适配器",
    )
    p.add_argument(
        "--env", default=None,
        help=".env 文件路径 (默认: 当前目录下的 .env)",
    )
    p.add_argument(
        "--config", default="config.yaml",
        help="配置文件路径 (默认: config.yaml，不存在时使用默认配置)",
    )
    p.add_argument(
        "--host", default=None,
        help="HTTP 服务监听地址 (默认取配置文件，可通过环境变量 HTTP_HOST 覆盖)",
    )
    p.add_argument(
        "--port", type=int, default=None,
        help="HTTP 服务监听端口 (默认取配置文件，可通过环境变量 HTTP_PORT 覆盖)",
    )
    return p.parse_args()


async def main():
    args = parse_args()

    load_env(args.env)
    config = AppConfig.from_yaml(args.config)
    setup_logging(log_dir=config.log.dir, level=config.log.level)

    # 命令行参数优先，其次环境变量，最后使用配置文件
    host = args.host or os.environ.get("HTTP_HOST", config.server.host)
    port = args.port or int(os.environ.get("HTTP_PORT", config.server.port))

    settings = config.build_settings(os.environ)
    client = WeChatClient(
        settings.app_id,
        settings.app_secret,
        api_base=config.wechat.api_base,
        proxy=config.wechat.proxy or os.environ.get("PROXY"),
    )
    adapter = WeChatAdapter(settings, client)
    server = HttpServer(adapter, echo_bot, host=host, port=port, path=config.server.path)

    await client.start()
    try:
        await server.start()
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        await server.stop()
        await client.close()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
