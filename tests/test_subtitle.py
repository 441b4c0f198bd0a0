from __future__ import annotations

from segmux.media.subtitle import (
    clamp_to_length,
    fix_look_and_feel,
    fix_subtitle,
    format_ass_time,
)

SUBTITLE = """[Script Info]
Title: Episode 1
ScriptType: v4.00+

[Events]
Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text
Dialogue: 0,0:00:01.00,0:00:03.50,Default,,0,0,0,,Hello
Dialogue: 0,0:23:58.00,0:24:05.00,Default,,0,0,0,,Goodbye
Dialogue: 0,0:24:10.00,0:24:12.00,Default,,0,0,0,,After the end"""


def test_scaled_border_is_added_to_script_info() -> None:
    lines = fix_look_and_feel(SUBTITLE).split("\n")

    assert lines[4] == "ScaledBorderAndShadow: yes"
    assert lines[5] == "[Events]"


def test_existing_scaled_border_is_replaced() -> None:
    text = "[Script Info]\nScaledBorderAndShadow: no\n[Events]"

    assert fix_look_and_feel(text) == (
        "[Script Info]\nScaledBorderAndShadow: yes\n[Events]"
    )


def test_script_info_at_end_of_file() -> None:
    assert fix_look_and_feel("[Script Info]\nTitle: x") == (
        "[Script Info]\nTitle: x\nScaledBorderAndShadow: yes"
    )


def test_dialogue_is_clamped_to_video_length() -> None:
    clamped = clamp_to_length(SUBTITLE, 24 * 60 + 1.5)

    assert "Dialogue: 0,0:00:01.00,0:00:03.50,Default,,0,0,0,,Hello" in clamped
    assert "Dialogue: 0,0:23:58.00,0:24:01.50,Default,,0,0,0,,Goodbye" in clamped
    assert "After the end" not in clamped


def test_unknown_length_keeps_all_dialogue() -> None:
    fixed = fix_subtitle(SUBTITLE, None)

    assert "After the end" in fixed
    assert "ScaledBorderAndShadow: yes" in fixed


def test_format_ass_time_uses_centiseconds() -> None:
    assert format_ass_time(3661.257) == "1:01:01.25"
