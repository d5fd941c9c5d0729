"""Tests for the streaming format parsers and the parsing entry points."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from chatlab.constants import DEFAULT_GROUP_NAME
from chatlab.errors import MalformedSourceError, UnrecognizedFormatError
from chatlab.formats import chatlab_archive, qq_exporter_legacy, qq_exporter_v4, qq_txt
from chatlab.formats.base import ParseOptions, ParseState
from chatlab.models import ChatPlatform, ChatType, MessageType, ParsedMessage, ParsedMeta
from chatlab.parser import collect_events, detect_format, parse_file, parse_file_info, stream_file
from conftest import legacy_export, legacy_message, ts, v4_export, v4_message, write_json


def event_types(events):
    return [event.type for event in events]


def parse_v4(tmp_path, messages, **options):
    path = write_json(tmp_path / "export.json", v4_export(messages))
    return collect_events(qq_exporter_v4.parse(path, ParseOptions(**options)))


class TestEventOrder:
    """Tests for the event sequence every parser produces."""

    def test_sequence(self, v4_file):
        events = list(qq_exporter_v4.parse(v4_file, ParseOptions()))
        types = event_types(events)

        assert types[0] == "progress"
        assert events[0].data.stage == "parsing"
        assert events[0].data.bytes_read == 0
        assert types[1] == "meta"
        assert types[-2:] == ["progress", "done"]
        assert events[-2].data.stage == "done"
        assert events[-2].data.percentage == 100.0
        assert events[-1].data == {"message_count": 5, "member_count": 3}

    def test_batches_respect_batch_size(self, v4_file):
        events = list(qq_exporter_v4.parse(v4_file, ParseOptions(batch_size=2)))
        sizes = [len(e.data) for e in events if e.type == "messages"]
        assert sizes == [2, 2, 1]

    def test_members_precede_their_messages(self, v4_file):
        events = list(qq_exporter_v4.parse(v4_file, ParseOptions(batch_size=2)))
        seen = set()
        for event in events:
            if event.type == "members":
                seen.update(m.platform_id for m in event.data)
            elif event.type == "messages":
                assert all(m.sender_platform_id in seen for m in event.data)

    def test_progress_after_each_full_batch(self, v4_file):
        events = list(qq_exporter_v4.parse(v4_file, ParseOptions(batch_size=2)))
        types = event_types(events)
        for index, kind in enumerate(types):
            if kind == "messages" and index + 1 < len(types) - 2:
                assert types[index + 1] == "progress"

    def test_on_progress_callback(self, v4_file):
        seen = []
        list(qq_exporter_v4.parse(v4_file, ParseOptions(batch_size=2, on_progress=seen.append)))
        assert seen[0].bytes_read == 0
        assert seen[-1].stage == "done"
        bytes_read = [p.bytes_read for p in seen]
        assert bytes_read == sorted(bytes_read)

    @pytest.mark.parametrize("fixture", ["v4_file", "legacy_file", "txt_file"])
    def test_every_sender_is_a_member(self, fixture, request):
        result = parse_file(request.getfixturevalue(fixture))
        member_ids = {m.platform_id for m in result.members}
        assert result.messages
        assert {m.sender_platform_id for m in result.messages} <= member_ids

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            ParseOptions(batch_size=0)

    def test_empty_messages_array(self, tmp_path):
        path = write_json(tmp_path / "empty.json", v4_export([]))
        events = list(qq_exporter_v4.parse(path, ParseOptions()))
        assert event_types(events) == ["progress", "meta", "progress", "done"]
        assert events[-1].data == {"message_count": 0, "member_count": 0}


class TestParseState:
    """Tests for the parser state machine."""

    def test_messages_before_meta_rejected(self, v4_file):
        state = ParseState(v4_file, ParseOptions())
        state.start()
        message = ParsedMessage("1", "A", 1700000000, MessageType.TEXT, "x")
        with pytest.raises(RuntimeError, match="out of order"):
            list(state.add_message(message, 0))

    def test_no_events_after_finish(self, v4_file):
        state = ParseState(v4_file, ParseOptions())
        state.start()
        state.emit_meta(ParsedMeta("g", ChatPlatform.QQ, ChatType.GROUP))
        list(state.finish())
        with pytest.raises(RuntimeError):
            list(state.finish())

    def test_renamed_member_is_re_emitted(self, v4_file):
        state = ParseState(v4_file, ParseOptions())
        state.start()
        state.emit_meta(ParsedMeta("g", ChatPlatform.QQ, ChatType.GROUP))
        state.see_member("1", "Old")
        list(state.add_message(ParsedMessage("1", "Old", 1700000000, MessageType.TEXT, "x"), 0))
        state.see_member("1", "Old")
        assert list(state._pending_members) == ["1"]
        list(state._flush())
        state.see_member("1", "Old")
        assert not state._pending_members
        state.see_member("1", "New")
        assert state._pending_members["1"].name == "New"


class TestQQExporterV4:
    """Tests for QQChatExporter V4 record normalization."""

    def test_meta(self, v4_file):
        result = parse_file(v4_file)
        assert result.meta.name == "Test Group"
        assert result.meta.platform == ChatPlatform.QQ
        assert result.meta.type == ChatType.GROUP

    def test_private_chat_and_default_name(self, tmp_path):
        data = v4_export([])
        data["chatInfo"] = {"type": "private"}
        path = write_json(tmp_path / "private.json", data)
        result = parse_file(path)
        assert result.meta.type == ChatType.PRIVATE
        assert result.meta.name == DEFAULT_GROUP_NAME

    def test_uin_preferred_over_uid(self, tmp_path):
        result = parse_v4(tmp_path, [v4_message(123, "A", 1700000000, "x", uid="u_abc")])
        assert result.messages[0].sender_platform_id == "123"

    def test_uid_fallback(self, tmp_path):
        result = parse_v4(tmp_path, [v4_message(None, "A", 1700000000, "x", uid="u_abc")])
        assert result.messages[0].sender_platform_id == "u_abc"

    def test_record_without_sender_dropped(self, tmp_path):
        record = v4_message(1, "A", 1700000000, "x")
        del record["sender"]
        result = parse_v4(tmp_path, [record, v4_message(2, "B", 1700000001, "y")])
        assert [m.sender_platform_id for m in result.messages] == ["2"]

    def test_timestamp_ms_to_seconds(self, tmp_path):
        result = parse_v4(tmp_path, [v4_message(1, "A", 1700000000, "x")])
        assert result.messages[0].timestamp == 1700000000

    def test_iso_timestamp(self, tmp_path):
        result = parse_v4(tmp_path, [v4_message(1, "A", "2017-12-30T03:24:36.000Z", "x")])
        assert result.messages[0].timestamp == 1514604276

    def test_naive_iso_timestamp_uses_timezone(self, tmp_path):
        result = parse_v4(
            tmp_path,
            [v4_message(1, "A", "2024-03-01T08:00:00", "x")],
            timezone="Asia/Shanghai",
        )
        assert result.messages[0].timestamp == ts(2024, 3, 1, 0, 0)

    def test_pre_2000_and_unparseable_timestamps_dropped(self, tmp_path):
        result = parse_v4(
            tmp_path,
            [
                v4_message(1, "A", 0, "epoch"),
                v4_message(1, "A", "not a date", "bad"),
                v4_message(1, "A", 1700000000, "ok"),
            ],
        )
        assert [m.content for m in result.messages] == ["ok"]

    def test_message_types(self, tmp_path):
        result = parse_v4(
            tmp_path,
            [
                v4_message(1, "A", 1700000000, "joined", system=True),
                v4_message(1, "A", 1700000001, "", resources=[{"type": "video"}]),
                v4_message(1, "A", 1700000002, "", resources=[{"type": "audio"}]),
                v4_message(1, "A", 1700000003, "", resources=[{"type": "file"}]),
                v4_message(1, "A", 1700000004, "", elements=[{"type": "market_face"}]),
                v4_message(1, "A", 1700000005, "", message_type=3),
                v4_message(1, "A", 1700000006, "plain", message_type=99),
            ],
        )
        assert [m.type for m in result.messages] == [
            MessageType.SYSTEM,
            MessageType.VIDEO,
            MessageType.VOICE,
            MessageType.FILE,
            MessageType.EMOJI,
            MessageType.VOICE,
            MessageType.TEXT,
        ]

    def test_recalled_marker(self, tmp_path):
        result = parse_v4(tmp_path, [v4_message(1, "A", 1700000000, "secret", recalled=True)])
        assert result.messages[0].content == "[已撤回] secret"

    def test_empty_text_is_none(self, tmp_path):
        result = parse_v4(tmp_path, [v4_message(1, "A", 1700000000, "")])
        assert result.messages[0].content is None

    def test_latest_member_name_wins(self, tmp_path):
        result = parse_v4(
            tmp_path,
            [
                v4_message(1, "Old", 1700000000, "a"),
                v4_message(1, "New", 1700000001, "b"),
            ],
            batch_size=1,
        )
        assert [(m.platform_id, m.name) for m in result.members] == [("1", "New")]
        # Messages keep the name they were sent under
        assert [m.sender_name for m in result.messages] == ["Old", "New"]

    def test_non_object_records_dropped(self, tmp_path):
        path = write_json(
            tmp_path / "export.json", v4_export(["junk", 42, v4_message(1, "A", 1700000000, "x")])
        )
        assert parse_file(path).message_count == 1


class TestMalformedSources:
    """Tests for structural errors aborting a parse."""

    def test_missing_messages_array(self, tmp_path):
        data = v4_export([])
        del data["messages"]
        path = write_json(tmp_path / "export.json", data)
        with pytest.raises(MalformedSourceError, match="messages"):
            list(qq_exporter_v4.parse(path, ParseOptions()))

    @pytest.mark.parametrize("value", [{"oops": 1}, "messages", 42, None])
    def test_messages_not_an_array(self, tmp_path, value):
        data = v4_export([])
        data["messages"] = value
        path = write_json(tmp_path / "export.json", data)
        with pytest.raises(MalformedSourceError, match="not an array"):
            parse_file(path)

    def test_truncated_json(self, tmp_path):
        path = tmp_path / "export.json"
        text = write_json(path, v4_export([v4_message(1, "A", 1700000000, "x")])).read_text(
            encoding="utf-8"
        )
        path.write_text(text[: len(text) // 2 + 40], encoding="utf-8")
        with pytest.raises(MalformedSourceError):
            list(qq_exporter_v4.parse(path, ParseOptions()))

    def test_root_must_be_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        with pytest.raises(MalformedSourceError):
            list(qq_exporter_legacy.parse(path, ParseOptions()))


class TestQQExporterLegacy:
    """Tests for pre-V4 QQChatExporter exports."""

    def test_parse(self, legacy_file):
        result = parse_file(legacy_file)
        assert result.meta.name == "Legacy Group"
        assert [m.type for m in result.messages] == [
            MessageType.TEXT,
            MessageType.EMOJI,
            MessageType.TEXT,
        ]
        assert result.messages[2].content == "[已撤回] oops"
        assert {m.name for m in result.members} == {"Dan", "Eve"}

    def test_type_codes(self, tmp_path):
        path = write_json(
            tmp_path / "legacy.json",
            legacy_export(
                [
                    legacy_message(1, "A", 1700000000, "", type_code="type_3"),
                    legacy_message(1, "A", 1700000001, "", type_code="type_7"),
                    legacy_message(1, "A", 1700000002, "notice", system=True),
                ]
            ),
        )
        types = [m.type for m in parse_file(path).messages]
        assert types == [MessageType.IMAGE, MessageType.VOICE, MessageType.SYSTEM]


class TestQQTxt:
    """Tests for the QQ desktop TXT export parser."""

    def test_parse(self, txt_file):
        result = parse_file(txt_file)
        assert result.meta.name == "Python 学习群"
        assert result.meta.type == ChatType.GROUP
        assert [m.sender_platform_id for m in result.messages] == [
            "10001",
            "bob@example.com",
            "10003",
            "10001",
        ]

    def test_title_stripped_from_name(self, txt_file):
        result = parse_file(txt_file)
        assert result.messages[0].sender_name == "Alice"

    def test_multiline_content(self, txt_file):
        result = parse_file(txt_file)
        assert result.messages[0].content == "first line\nsecond line"

    def test_detected_types(self, txt_file):
        result = parse_file(txt_file)
        assert [m.type for m in result.messages] == [
            MessageType.TEXT,
            MessageType.IMAGE,
            MessageType.EMOJI,
            MessageType.SYSTEM,
        ]

    def test_timestamps_in_configured_timezone(self, txt_file):
        utc = parse_file(txt_file).messages[0].timestamp
        shanghai = parse_file(txt_file, ParseOptions(timezone="Asia/Shanghai")).messages[0].timestamp
        assert utc == ts(2017, 2, 25, 10, 40, 20)
        assert shanghai == int(
            datetime(2017, 2, 25, 10, 40, 20, tzinfo=ZoneInfo("Asia/Shanghai")).timestamp()
        )

    def test_default_name_without_header(self, tmp_path):
        path = tmp_path / "bare.txt"
        path.write_text("2020-01-01 09:00:00 Zed(1)\nhello\n", encoding="utf-8")
        result = parse_file(path)
        assert result.meta.name == "未知对话"
        assert result.messages[0].content == "hello"

    def test_byte_order_mark(self, tmp_path):
        path = tmp_path / "bom.txt"
        path.write_bytes("\ufeff2020-01-01 09:00:00 Zed(1)\nhello\n".encode("utf-8"))
        result = collect_events(qq_txt.parse(path, ParseOptions()))
        assert result.message_count == 1
        assert result.messages[0].timestamp == ts(2020, 1, 1, 9, 0)

    def test_header_without_content_dropped(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text(
            "2020-01-01 09:00:00 Zed(1)\n\n2020-01-01 09:01:00 Amy(2)\nhi\n", encoding="utf-8"
        )
        result = parse_file(path)
        assert [m.sender_name for m in result.messages] == ["Amy"]
        assert {m.name for m in result.members} == {"Zed", "Amy"}

    @pytest.mark.parametrize(
        "content,expected",
        [
            ("[图片]", MessageType.IMAGE),
            ("[图片] caption", MessageType.IMAGE),
            ("[表情]", MessageType.EMOJI),
            ("[[doge]]", MessageType.EMOJI),
            ("[语音] 3\"", MessageType.VOICE),
            ("[视频] clip", MessageType.VIDEO),
            ("[文件] report.pdf", MessageType.FILE),
            ("Bob 退出了群聊", MessageType.SYSTEM),
            ("just text", MessageType.TEXT),
        ],
    )
    def test_detect_message_type(self, content, expected):
        assert qq_txt.detect_message_type(content) == expected


class TestChatLabArchiveParser:
    """Tests for reading ChatLab archives back."""

    def _archive(self, tmp_path, members, messages):
        return write_json(
            tmp_path / "merged.chatlab.json",
            {
                "chatlab": {"version": "1.0.0", "exportedAt": 1700000000, "generator": "test"},
                "meta": {"name": "Merged", "platform": "qq", "type": "group", "sources": []},
                "members": members,
                "messages": messages,
            },
        )

    def test_members_emitted_with_first_batch(self, tmp_path):
        path = self._archive(
            tmp_path,
            [
                {"platformId": "1", "name": "Alice", "aliases": ["Ally"]},
                {"platformId": "2", "name": "Bob"},
            ],
            [{"sender": "1", "name": "Alice", "timestamp": 1700000000, "type": 0, "content": "hi"}],
        )
        events = list(chatlab_archive.parse(path, ParseOptions()))
        members_events = [e for e in events if e.type == "members"]
        assert len(members_events) == 1
        assert [(m.platform_id, m.aliases) for m in members_events[0].data] == [
            ("1", ["Ally"]),
            ("2", []),
        ]

    def test_member_list_is_authoritative(self, tmp_path):
        path = self._archive(
            tmp_path,
            [{"platformId": "1", "name": "Alice"}],
            [
                {"sender": "1", "name": "Old Alice", "timestamp": 1700000000, "type": 0, "content": "hi"},
                {"sender": "9", "name": "Ghost", "timestamp": 1700000001, "type": 0, "content": "boo"},
            ],
        )
        result = parse_file(path)
        assert {m.platform_id: m.name for m in result.members} == {"1": "Alice", "9": "Ghost"}
        assert result.messages[0].sender_name == "Old Alice"

    def test_timestamps_are_seconds_and_types_kept(self, tmp_path):
        path = self._archive(
            tmp_path,
            [],
            [
                {"sender": "1", "name": "A", "timestamp": 1700000000, "type": 1, "content": None},
                {"sender": "1", "name": "A", "timestamp": True, "type": 0, "content": "bool ts"},
                {"sender": "", "name": "A", "timestamp": 1700000002, "type": 0, "content": "no sender"},
            ],
        )
        result = parse_file(path)
        assert len(result.messages) == 1
        assert result.messages[0].timestamp == 1700000000
        assert result.messages[0].type == MessageType.IMAGE
        assert result.messages[0].content is None

    def test_missing_meta(self, tmp_path):
        path = write_json(tmp_path / "x.json", {"chatlab": {}, "messages": []})
        with pytest.raises(MalformedSourceError, match="meta"):
            list(chatlab_archive.parse(path, ParseOptions()))


class TestParsingEntryPoints:
    """Tests for the chatlab.parser convenience functions."""

    def test_detect_format(self, legacy_file):
        assert detect_format(legacy_file).name == "QQChatExporter (legacy)"

    def test_stream_file_unrecognized(self, tmp_path):
        path = write_json(tmp_path / "other.json", {"a": 1})
        with pytest.raises(UnrecognizedFormatError):
            stream_file(path)

    def test_stream_file_uses_settings_batch_size(self, v4_file, monkeypatch):
        from chatlab import config

        monkeypatch.setenv("CHATLAB_BATCH_SIZE", "1")
        monkeypatch.setattr(config, "_settings", None)
        sizes = [len(e.data) for e in stream_file(v4_file) if e.type == "messages"]
        assert sizes == [1, 1, 1, 1, 1]

    def test_collect_events_requires_meta(self):
        with pytest.raises(ValueError):
            collect_events([])

    def test_parse_file_info(self, v4_file):
        info = parse_file_info(v4_file)
        assert info.name == "Test Group"
        assert info.format == "QQChatExporter V4"
        assert info.platform == ChatPlatform.QQ
        assert info.message_count == 5
        assert info.member_count == 3
