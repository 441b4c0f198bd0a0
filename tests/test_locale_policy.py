from __future__ import annotations

import logging

import pytest

from segmux.core import locale_policy
from segmux.core.locale_policy import (
    FailPolicy,
    PromptPolicy,
    WarnPolicy,
    check_requested_locales,
    order_by_locale,
    policy_for,
)
from segmux.exceptions import ConfigurationError, MissingLocaleError
from segmux.models.job import DownloadJob


def _job(**requested) -> DownloadJob:
    return DownloadJob(
        tracks=[
            {"id": "a-en", "kind": "audio", "locale": "en", "url": "https://cdn.test/en"},
            {"id": "s-de", "kind": "subtitle", "locale": "de", "url": "https://cdn.test/de"},
        ],
        **requested,
    )


class RecordingPolicy:
    def __init__(self) -> None:
        self.calls = []

    def resolve(self, kind, missing, available):
        self.calls.append((kind, missing, available))


def test_policy_is_consulted_per_kind() -> None:
    policy = RecordingPolicy()

    check_requested_locales(
        _job(requested_audio=["en", "fr"], requested_subtitles=["de", "it", "es"]),
        policy,
    )

    assert policy.calls == [
        ("audio", ["fr"], ["en"]),
        ("subtitle", ["it", "es"], ["de"]),
    ]


def test_nothing_missing_consults_nothing() -> None:
    policy = RecordingPolicy()

    check_requested_locales(_job(requested_audio=["en"]), policy)

    assert policy.calls == []


def test_fail_policy_raises() -> None:
    with pytest.raises(MissingLocaleError, match="fr"):
        check_requested_locales(_job(requested_audio=["fr"]), FailPolicy())


def test_warn_policy_logs_and_continues(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        check_requested_locales(_job(requested_subtitles=["it"]), WarnPolicy())

    assert "it" in caplog.text


def test_prompt_policy_aborts_when_declined(monkeypatch) -> None:
    monkeypatch.setattr(locale_policy.Confirm, "ask", lambda *args, **kwargs: False)

    with pytest.raises(MissingLocaleError):
        check_requested_locales(_job(requested_audio=["fr"]), PromptPolicy())


def test_prompt_policy_continues_when_confirmed(monkeypatch) -> None:
    monkeypatch.setattr(locale_policy.Confirm, "ask", lambda *args, **kwargs: True)

    check_requested_locales(_job(requested_audio=["fr"]), PromptPolicy())


def test_policy_for_names() -> None:
    assert isinstance(policy_for("fail"), FailPolicy)
    assert isinstance(policy_for("warn"), WarnPolicy)
    with pytest.raises(ConfigurationError):
        policy_for("ignore")


def test_tracks_are_ordered_by_requested_locale() -> None:
    job = DownloadJob(
        tracks=[
            {"id": "v", "kind": "video", "url": "https://cdn.test/v"},
            {"id": "ja", "kind": "subtitle", "locale": "ja", "url": "https://cdn.test/1"},
            {
                "id": "en-cc",
                "kind": "subtitle",
                "locale": "en",
                "closed_captions": True,
                "url": "https://cdn.test/2",
            },
            {"id": "de", "kind": "subtitle", "locale": "de", "url": "https://cdn.test/3"},
            {"id": "en", "kind": "subtitle", "locale": "en", "url": "https://cdn.test/4"},
        ]
    )

    ordered = order_by_locale(job.subtitles, ["en", "de"])

    assert [t.id for t in ordered] == ["en", "en-cc", "de", "ja"]
    assert [t.id for t in order_by_locale(job.subtitles, [])] == [
        "ja",
        "en-cc",
        "de",
        "en",
    ]
