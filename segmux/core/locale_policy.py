"""
What to do when a job lacks audio or subtitle locales that were asked for.
"""

import logging
from typing import Protocol

from rich.console import Console
from rich.prompt import Confirm

from segmux.exceptions import ConfigurationError, MissingLocaleError
from segmux.models.job import DownloadJob, Track

log = logging.getLogger(__name__)


class MissingLocalePolicy(Protocol):
    def resolve(self, kind: str, missing: list[str], available: list[str]) -> None:
        """Returns to continue the job, raises MissingLocaleError to abort it."""


def _describe(kind: str, missing: list[str], available: list[str]) -> str:
    return (
        f"Requested {kind} locales not available: {', '.join(missing)} "
        f"(available: {', '.join(available) or 'none'})"
    )


class FailPolicy:
    def resolve(self, kind: str, missing: list[str], available: list[str]) -> None:
        raise MissingLocaleError(_describe(kind, missing, available))


class WarnPolicy:
    def resolve(self, kind: str, missing: list[str], available: list[str]) -> None:
        log.warning(f"[yellow]{_describe(kind, missing, available)}[/yellow]")


class PromptPolicy:
    """Asks on the terminal whether to continue without the missing locales."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console(stderr=True)

    def resolve(self, kind: str, missing: list[str], available: list[str]) -> None:
        self.console.print(f"[yellow]{_describe(kind, missing, available)}[/yellow]")
        if not Confirm.ask("Continue anyway?", console=self.console, default=False):
            raise MissingLocaleError(_describe(kind, missing, available))


_POLICIES = {
    "fail": FailPolicy,
    "warn": WarnPolicy,
    "prompt": PromptPolicy,
}


def policy_for(name: str) -> MissingLocalePolicy:
    try:
        return _POLICIES[name]()
    except KeyError:
        raise ConfigurationError(
            f"Unknown missing locale policy '{name}'. "
            f"Choose one of: {', '.join(_POLICIES)}."
        ) from None


def check_requested_locales(job: DownloadJob, policy: MissingLocalePolicy) -> None:
    """Consults the policy once per track kind that misses requested locales."""
    for kind, requested, tracks in (
        ("audio", job.requested_audio, job.audios),
        ("subtitle", job.requested_subtitles, job.subtitles),
    ):
        available = list(dict.fromkeys(t.locale for t in tracks if t.locale))
        missing = [locale for locale in requested if locale not in available]
        if missing:
            policy.resolve(kind, missing, available)


def order_by_locale(tracks: list[Track], requested: list[str]) -> list[Track]:
    """
    Orders tracks by the position of their locale in `requested`. Locales that
    were not asked for follow in job order. Within one locale the full
    subtitle comes before its closed captions.
    """
    if not requested:
        return list(tracks)
    rank = {locale: position for position, locale in enumerate(requested)}
    return sorted(
        tracks,
        key=lambda t: (rank.get(t.locale, len(requested)), t.closed_captions),
    )
