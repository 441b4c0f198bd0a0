"""
Post-processing for downloaded ASS subtitles.
"""

import logging
import re

from segmux.utils.formatting import parse_time

log = logging.getLogger(__name__)

DIALOGUE_PATTERN = re.compile(
    r"^Dialogue:\s(?P<layer>\d+),(?P<start>\d+:\d+:\d+\.\d+),(?P<end>\d+:\d+:\d+\.\d+),"
)


def format_ass_time(seconds: float) -> str:
    """ASS timestamps use centiseconds: H:MM:SS.cc."""
    centis_total = int(seconds * 100)
    hours, remainder = divmod(centis_total, 360_000)
    minutes, remainder = divmod(remainder, 6000)
    secs, centis = divmod(remainder, 100)
    return f"{hours}:{minutes:02}:{secs:02}.{centis:02}"


def fix_look_and_feel(text: str) -> str:
    """
    Adds 'ScaledBorderAndShadow: yes' to the [Script Info] section. Without it
    borders and shadows are scaled wrongly by several players.
    """
    lines = []
    in_script_info = False
    for line in text.split("\n"):
        stripped = line.strip()
        if in_script_info and stripped.startswith("["):
            lines.append("ScaledBorderAndShadow: yes")
            in_script_info = False
        elif stripped == "[Script Info]":
            in_script_info = True
        elif in_script_info and stripped.lower().startswith("scaledborderandshadow"):
            continue
        lines.append(line)
    if in_script_info:
        lines.append("ScaledBorderAndShadow: yes")
    return "\n".join(lines)


def clamp_to_length(text: str, max_length: float) -> str:
    """
    Drops dialogue lines starting after the video ends and cuts the ones that
    run past it, so the subtitle stream does not extend the output duration.
    """
    limit = format_ass_time(max_length)
    lines = []
    dropped = 0
    for line in text.split("\n"):
        match = DIALOGUE_PATTERN.match(line)
        if match:
            start = parse_time(match.group("start"))
            end = parse_time(match.group("end"))
            if start > max_length:
                dropped += 1
                continue
            if end > max_length:
                line = (
                    f"Dialogue: {match.group('layer')},{match.group('start')},{limit},"
                    + line[match.end():]
                )
        lines.append(line)
    if dropped:
        log.debug(f"Dropped {dropped} subtitle lines past the video end ({limit})")
    return "\n".join(lines)


def fix_subtitle(text: str, max_length: float | None) -> str:
    text = fix_look_and_feel(text)
    if max_length:
        text = clamp_to_length(text, max_length)
    return text
