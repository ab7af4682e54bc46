"""
Pydantic 配置模型

通过 config.yaml 管理除微信凭据以外的所有配置项。
微信凭据（APP_ID / APP_SECRET / TOKEN / ENCODING_AES_KEY）仍由 .env 环境变量提供。
"""

import base64
import binascii
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator
import yaml

ENCODING_AES_KEY_LENGTH = 43


class WeChatSettings(BaseModel):
    """适配器运行参数，构造 WeChatAdapter 时校验"""

    app_id: str = Field(..., min_length=1, description="公众号 AppID")
    app_secret: str = Field("", description="公众号 AppSecret")
    token: str = Field(..., min_length=1, description="服务器配置中的 Token")
    encoding_aes_key: Optional[str] = Field(None, description="消息加解密密钥，明文模式可不填")
    upload_temporary_media: bool = Field(False, description="附件是否先上传为临时素材再发送")
    passive_response: bool = Field(False, description="是否以被动回复方式在 HTTP 响应中返回消息")

    @field_validator("encoding_aes_key")
    @classmethod
    def _check_aes_key(cls, v: Optional[str]) -> Optional[str]:
        if v in (None, ""):
            return None
        if len(v) != ENCODING_AES_KEY_LENGTH:
            raise ValueError(f"EncodingAESKey 长度必须为 {ENCODING_AES_KEY_LENGTH}")
        try:
            key = base64.b64decode(v + "=", validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"EncodingAESKey 不是合法的 Base64: {e}") from e
        if len(key) != 32:
            raise ValueError("EncodingAESKey 解码后不是 32 字节")
        return v


class WeChatConfig(BaseModel):
    upload_temporary_media: bool = Field(False, description="附件是否先上传为临时素材")
    passive_response: bool = Field(False, description="是否使用被动回复")
    api_base: Optional[str] = Field(None, description="微信接口地址，默认官方地址")
    proxy: Optional[str] = Field(None, description="出站 HTTP 代理")


class ServerConfig(BaseModel):
    host: str = Field("0.0.0.0", description="HTTP 监听地址")
    port: int = Field(8080, description="HTTP 监听端口")
    path: str = Field("/api/messages", description="微信服务器配置的 URL 路径")


class LogConfig(BaseModel):
    level: str = Field("INFO", description="日志级别")
    dir: Optional[str] = Field(None, description="日志输出目录，不指定则仅控制台")


class AppConfig(BaseModel):
    wechat: WeChatConfig = Field(default_factory=WeChatConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_yaml(cls, path: str | Path = "config.yaml") -> "AppConfig":
        p = Path(path)
        if not p.exists():
            return cls()
        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    def build_settings(self, environ: Mapping[str, str]) -> WeChatSettings:
        """合并环境变量中的凭据与配置文件中的选项"""
        return WeChatSettings(
            app_id=environ.get("APP_ID", ""),
            app_secret=environ.get("APP_SECRET", ""),
            token=environ.get("TOKEN", ""),
            encoding_aes_key=environ.get("ENCODING_AES_KEY") or None,
            upload_temporary_media=self.wechat.upload_temporary_media,
            passive_response=self.wechat.passive_response,
        )
