"""pytest 配置：把两个包的源码目录加入 sys.path，并提供公共夹具"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent
for path in (ROOT / "src", ROOT / "packages" / "protocol", ROOT / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from helpers import APP_ID, ENCODING_AES_KEY, TOKEN  # noqa: E402
from wechat_adapter.models import WeChatSettings  # noqa: E402


@pytest.fixture
def settings() -> WeChatSettings:
    return WeChatSettings(
        app_id=APP_ID,
        app_secret="secret",
        token=TOKEN,
        encoding_aes_key=ENCODING_AES_KEY,
    )


@pytest.fixture
def passive_settings(settings: WeChatSettings) -> WeChatSettings:
    return settings.model_copy(update={"passive_response": True})
