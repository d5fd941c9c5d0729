"""Test configuration and fixtures for chatlab."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from chatlab import config
from chatlab.store import SessionStore


def ts(*args) -> int:
    """Unix seconds for a UTC datetime given as datetime() arguments."""
    return int(datetime(*args, tzinfo=timezone.utc).timestamp())


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    return path


# =============================================================================
# Export builders
# =============================================================================


def v4_message(
    uin,
    name,
    timestamp,
    text="",
    message_type=1,
    system=False,
    recalled=False,
    resources=None,
    elements=None,
    uid=None,
):
    """One QQChatExporter V4 record. timestamp is epoch seconds unless a str."""
    sender = {"uid": uid or f"u_{uin}", "name": name}
    if uin is not None:
        sender["uin"] = uin
    return {
        "id": f"msg-{uin}-{timestamp}",
        "timestamp": timestamp * 1000 if isinstance(timestamp, int) else timestamp,
        "sender": sender,
        "messageType": message_type,
        "isSystemMessage": system,
        "isRecalled": recalled,
        "content": {
            "text": text,
            "elements": elements or [],
            "resources": resources or [],
        },
    }


def v4_export(messages, name="Test Group", chat_type="group"):
    return {
        "metadata": {"name": "QQChatExporter V4", "version": "4.0.0"},
        "chatInfo": {"name": name, "type": chat_type},
        "messages": messages,
    }


def legacy_message(uin, name, timestamp, text="", type_code="type_1", system=False, recalled=False):
    return {
        "timestamp": timestamp * 1000,
        "sender": {"uid": f"u_{uin}", "uin": uin, "name": name},
        "type": type_code,
        "system": system,
        "recalled": recalled,
        "content": {"text": text},
    }


def legacy_export(messages, name="Legacy Group"):
    return {"chatInfo": {"name": name, "type": "group"}, "messages": messages}


TXT_EXPORT = """消息记录（此消息记录为文本格式，不支持重新导入）
================================================================
消息分组:我的群聊
================================================================
消息对象:Python 学习群
================================================================

2017-02-25 10:40:20 【管理员】Alice(10001)
first line
second line

2017-02-25 10:41:02 Bob<bob@example.com>
[图片]

2017-02-25 10:42:00 Carol(10003)
[微笑]

2017-02-25 10:43:00 Alice(10001)
Carol 加入了群聊
"""


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every CHATLAB_* setting into the test's tmp_path."""
    monkeypatch.setenv("CHATLAB_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("CHATLAB_OUTPUT_DIR", str(tmp_path / "merged"))
    monkeypatch.setenv("CHATLAB_TIMEZONE", "UTC")
    monkeypatch.delenv("CHATLAB_SESSIONS_DIR", raising=False)
    monkeypatch.delenv("CHATLAB_BATCH_SIZE", raising=False)
    monkeypatch.setattr(config, "_settings", None)


@pytest.fixture
def store(tmp_path):
    """An empty session store under tmp_path."""
    return SessionStore(tmp_path / "sessions")


@pytest.fixture
def v4_file(tmp_path):
    """A small V4 export: three members, five messages."""
    return write_json(
        tmp_path / "v4.json",
        v4_export(
            [
                v4_message(10001, "Alice", ts(2024, 3, 1, 10, 0), "hello"),
                v4_message(10002, "Bob", ts(2024, 3, 1, 10, 1), "hi there"),
                v4_message(10001, "Alice", ts(2024, 3, 1, 10, 2), "how are you"),
                v4_message(10003, "Carol", ts(2024, 3, 1, 10, 3), "", message_type=2,
                           resources=[{"type": "image", "filename": "a.jpg"}]),
                v4_message(10002, "Bob", ts(2024, 3, 1, 10, 4), "fine"),
            ]
        ),
    )


@pytest.fixture
def legacy_file(tmp_path):
    return write_json(
        tmp_path / "legacy.json",
        legacy_export(
            [
                legacy_message(20001, "Dan", ts(2023, 5, 1, 8, 0), "morning"),
                legacy_message(20002, "Eve", ts(2023, 5, 1, 8, 1), "", type_code="type_17"),
                legacy_message(20001, "Dan", ts(2023, 5, 1, 8, 2), "oops", recalled=True),
            ]
        ),
    )


@pytest.fixture
def txt_file(tmp_path):
    path = tmp_path / "chat.txt"
    path.write_text(TXT_EXPORT, encoding="utf-8")
    return path
