"""Tests for the thread matcher.

Tests the weighted score, the strict match threshold, and tie-breaking.
"""

from collections.abc import Callable
from datetime import timedelta

import pytest

from threadhub.engine.matcher import MATCH_THRESHOLD, ThreadMatcher
from threadhub.engine.models import Message, Thread, ThreadOptions


def _thread_from(message: Message, thread_id: str = "thread_a") -> Thread:
    return Thread(
        id=thread_id,
        subject=message.subject.lower(),
        participants=message.participants,
        messages=[message],
        last_activity=message.timestamp,
        sources=[message.source_tag],
    )


class TestScore:
    """Tests for ThreadMatcher.score."""

    def test_identical_message_scores_without_references(
        self, make_message: Callable[..., Message]
    ) -> None:
        """Subject, participants and time all match; references never contribute."""
        first = make_message("m1")
        thread = _thread_from(first)

        score = ThreadMatcher().score(make_message("m2"), thread, ThreadOptions())

        assert score == pytest.approx(0.9)

    def test_time_decay_inside_window(self, make_message: Callable[..., Message]) -> None:
        thread = _thread_from(make_message("m1"))
        later = make_message("m2", hours=84)

        score = ThreadMatcher().score(later, thread, ThreadOptions(time_window_hours=168))

        assert score == pytest.approx(0.4 + 0.3 + 0.2 * 0.5)

    def test_window_option_is_used(self, make_message: Callable[..., Message]) -> None:
        thread = _thread_from(make_message("m1"))
        later = make_message("m2", hours=48)

        narrow = ThreadMatcher().score(later, thread, ThreadOptions(time_window_hours=24))

        assert narrow == pytest.approx(0.7)

    def test_references_score_is_zero(self, make_message: Callable[..., Message]) -> None:
        message = make_message("m1")
        assert ThreadMatcher().references_score(message, _thread_from(message)) == 0.0


class TestFindBestMatch:
    """Tests for ThreadMatcher.find_best_match."""

    def test_score_at_threshold_is_not_a_match(
        self, make_message: Callable[..., Message]
    ) -> None:
        """Same participants and time but an unrelated subject scores exactly 0.5."""
        thread = _thread_from(make_message("m1", subject="abc"))
        message = make_message("m2", subject="xyz")

        matcher = ThreadMatcher()
        assert matcher.score(message, thread, ThreadOptions()) == MATCH_THRESHOLD
        assert matcher.find_best_match(message, [thread], ThreadOptions()) is None

    def test_highest_score_wins(self, make_message: Callable[..., Message]) -> None:
        older = _thread_from(make_message("m1", hours=-100), "thread_old")
        recent = _thread_from(make_message("m2", hours=-1), "thread_recent")

        match = ThreadMatcher().find_best_match(
            make_message("m3"), [older, recent], ThreadOptions()
        )

        assert match is not None
        assert match.thread.id == "thread_recent"

    def test_tie_goes_to_first_thread(self, make_message: Callable[..., Message]) -> None:
        first = _thread_from(make_message("m1"), "thread_first")
        second = _thread_from(make_message("m2"), "thread_second")

        match = ThreadMatcher().find_best_match(
            make_message("m3"), [first, second], ThreadOptions()
        )

        assert match is not None
        assert match.thread.id == "thread_first"

    def test_no_threads(self, make_message: Callable[..., Message]) -> None:
        assert ThreadMatcher().find_best_match(make_message(), [], ThreadOptions()) is None

    def test_unrelated_message(self, make_message: Callable[..., Message]) -> None:
        thread = _thread_from(make_message("m1", subject="abc"))
        message = make_message(
            "m2",
            subject="xyz",
            sender="someone@else.com",
            to=["other@else.com"],
        )
        message = message.model_copy(update={"timestamp": message.timestamp + timedelta(days=30)})

        assert ThreadMatcher().find_best_match(message, [thread], ThreadOptions()) is None
