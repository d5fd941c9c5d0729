"""Tests for format registration and sniffing."""

import pytest

from chatlab.errors import UnrecognizedFormatError
from chatlab.models import ChatPlatform, FormatDescriptor
from chatlab.registry import FormatModule, FormatRegistry, builtin_formats, default_registry
from chatlab.sniffer import FormatSniffer, matches_descriptor, read_file_head
from conftest import legacy_export, legacy_message, v4_export, v4_message, write_json


def _noop_parse(path, options):
    return iter(())


def _module(id, priority, **kwargs):
    descriptor = FormatDescriptor.build(
        id=id,
        name=id.title(),
        platform=ChatPlatform.UNKNOWN,
        priority=priority,
        extensions=kwargs.pop("extensions", [".json"]),
        **kwargs,
    )
    return FormatModule(descriptor=descriptor, parse=_noop_parse)


class TestFormatRegistry:
    """Tests for FormatRegistry ordering and lookup."""

    def test_builtin_formats_sorted_by_priority(self):
        priorities = [m.descriptor.priority for m in default_registry()]
        assert priorities == sorted(priorities)
        assert len(default_registry()) == len(builtin_formats())

    def test_builtin_ids(self):
        ids = [m.id for m in default_registry()]
        assert ids == [
            "chatlab",
            "shuakami-qq-exporter-v4",
            "shuakami-qq-exporter-legacy",
            "qq-native-txt",
        ]

    def test_register_keeps_priority_order(self):
        registry = FormatRegistry()
        registry.register(_module("late", 50))
        registry.register(_module("early", 5))
        assert [m.id for m in registry] == ["early", "late"]

    def test_equal_priority_keeps_registration_order(self):
        registry = FormatRegistry([_module("first", 10), _module("second", 10)])
        assert [m.id for m in registry] == ["first", "second"]

    def test_duplicate_id_rejected(self):
        registry = FormatRegistry([_module("dup", 1)])
        with pytest.raises(ValueError, match="already registered"):
            registry.register(_module("dup", 2))

    def test_get_by_id(self):
        registry = default_registry()
        assert registry.get("qq-native-txt").name == "QQ Native TXT Export"
        assert registry.get("missing") is None

    def test_redos_pattern_rejected(self):
        with pytest.raises(ValueError, match="nested quantifiers"):
            _module("bad", 1, head=[r"(a+)+"])


class TestMatchesDescriptor:
    """Tests for the individual sniffing checks."""

    def test_extension_must_match(self):
        descriptor = _module("x", 1, head=[r"hello"]).descriptor
        assert matches_descriptor(descriptor, ".json", "hello")
        assert not matches_descriptor(descriptor, ".txt", "hello")

    def test_any_head_pattern_suffices(self):
        descriptor = _module("x", 1, head=[r"alpha", r"beta"]).descriptor
        assert matches_descriptor(descriptor, ".json", "...beta...")
        assert not matches_descriptor(descriptor, ".json", "gamma")

    def test_required_fields_all_needed(self):
        descriptor = _module("x", 1, required_fields=["a", "b"]).descriptor
        assert matches_descriptor(descriptor, ".json", '{"a": 1, "b": 2}')
        assert not matches_descriptor(descriptor, ".json", '{"a": 1}')

    def test_field_patterns_all_needed(self):
        descriptor = _module("x", 1, field_patterns={"v": r'"v"\s*:\s*2'}).descriptor
        assert matches_descriptor(descriptor, ".json", '{"v": 2}')
        assert not matches_descriptor(descriptor, ".json", '{"v": 3}')

    def test_no_checks_matches_on_extension(self):
        descriptor = _module("x", 1).descriptor
        assert matches_descriptor(descriptor, ".json", "")


class TestFormatSniffer:
    """Tests for detecting the built-in formats."""

    def test_detect_v4(self, v4_file):
        assert FormatSniffer().detect(v4_file).id == "shuakami-qq-exporter-v4"

    def test_detect_v4_by_version_only(self, tmp_path):
        data = v4_export([v4_message(1, "A", 1700000000, "x")])
        data["metadata"] = {"version": "4.2.1"}
        path = write_json(tmp_path / "export.json", data)
        assert FormatSniffer().detect(path).id == "shuakami-qq-exporter-v4"

    def test_detect_legacy(self, legacy_file):
        assert FormatSniffer().detect(legacy_file).id == "shuakami-qq-exporter-legacy"

    def test_detect_txt(self, txt_file):
        assert FormatSniffer().detect(txt_file).id == "qq-native-txt"

    def test_detect_archive_before_qq_formats(self, tmp_path):
        path = write_json(
            tmp_path / "merged.chatlab.json",
            {
                "chatlab": {"version": "1.0.0"},
                "meta": {"name": "QQChatExporter V4 fans", "platform": "qq", "type": "group"},
                "members": [],
                "messages": [],
            },
        )
        assert FormatSniffer().detect(path).id == "chatlab"

    def test_unrecognized_json(self, tmp_path):
        path = write_json(tmp_path / "other.json", {"hello": "world"})
        assert FormatSniffer().detect(path) is None

    def test_unknown_extension(self, tmp_path):
        path = tmp_path / "export.csv"
        path.write_text("QQChatExporter V4", encoding="utf-8")
        assert FormatSniffer().detect(path) is None

    def test_extension_case_insensitive(self, tmp_path):
        path = write_json(tmp_path / "EXPORT.JSON", legacy_export([legacy_message(1, "A", 1700000000)]))
        assert FormatSniffer().detect(path).id == "shuakami-qq-exporter-legacy"

    def test_require_raises_with_available_formats(self, tmp_path):
        path = write_json(tmp_path / "other.json", {"hello": "world"})
        with pytest.raises(UnrecognizedFormatError) as exc_info:
            FormatSniffer().require(path)
        assert "QQChatExporter V4" in exc_info.value.available_formats

    def test_custom_registry(self, tmp_path):
        module = _module("custom", 1, head=[r"custom-marker"])
        path = tmp_path / "data.json"
        path.write_text('{"custom-marker": true}', encoding="utf-8")

        sniffer = FormatSniffer(FormatRegistry([module]))
        assert sniffer.get_parser(path) is module
        assert sniffer.get_parser_by_id("custom") is module

    def test_head_is_bounded(self, tmp_path):
        path = tmp_path / "big.json"
        path.write_text("x" * 100 + "QQChatExporter V4", encoding="utf-8")
        assert "QQChatExporter" not in read_file_head(path, size=50)

    def test_head_tolerates_cut_multibyte_character(self, tmp_path):
        path = tmp_path / "cut.txt"
        path.write_bytes("消息记录".encode("utf-8"))
        # 4 bytes cuts the second character in half
        assert read_file_head(path, size=4).startswith("消")
