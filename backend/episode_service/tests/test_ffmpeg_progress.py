import os
import sys

sys.path.append(
    os.path.abspath(
        os.path.join(os.path.dirname(__file__), "..", "..")
    )
)

from episode_service.services.ffmpeg_progress import (
    ProgressScanner,
    clock_to_seconds,
    compute_percent,
)


def test_clock_to_seconds():
    assert clock_to_seconds("01", "02", "03.50") == 3723.5
    assert clock_to_seconds("00", "00", "00") == 0.0


def test_percent_is_zero_until_duration_known():
    assert compute_percent(5.0, None) == 0.0
    assert compute_percent(5.0, 0.0) == 0.0


def test_percent_rounds_to_two_decimals_and_caps():
    assert compute_percent(1.0, 3.0) == 33.33
    assert compute_percent(12.0, 10.0) == 100.0


def test_position_before_duration_reports_zero():
    scanner = ProgressScanner()
    scanner.feed("frame=1 time=00:00:04.00 bitrate=N/A\r")
    assert scanner.percent == 0.0
    assert not scanner.duration_known

    # Once the duration arrives the last seen position counts
    scanner.feed("  Duration: 00:00:08.00, start: 0.0\n")
    assert scanner.percent == 50.0


def test_only_first_duration_is_used():
    scanner = ProgressScanner()
    scanner.feed("  Duration: 00:01:40.00, start: 0\n")
    scanner.feed("  Duration: 00:00:10.00, start: 0\n")
    assert scanner.duration_seconds == 100.0


def test_tokens_split_across_chunks():
    scanner = ProgressScanner()
    assert scanner.feed("  Dura") is False
    scanner.feed("tion: 00:00:20.00, start: 0\nframe=5 ti")
    assert scanner.duration_seconds == 20.0
    assert scanner.feed("me=00:00:05.00 bitrate=1k\r") is True
    assert scanner.percent == 25.0


def test_progress_never_decreases():
    scanner = ProgressScanner()
    scanner.feed("Duration: 00:00:10.00\n")
    scanner.feed("time=00:00:06.00\r")
    assert scanner.feed("time=00:00:04.00\r") is False
    assert scanner.percent == 60.0
    assert scanner.position_seconds == 4.0


def test_unknown_duration_and_negative_time_are_ignored():
    scanner = ProgressScanner()
    scanner.feed("  Duration: N/A, start: 0\n")
    scanner.feed("frame=1 time=-00:00:00.02 bitrate=N/A\r")
    scanner.feed("frame=2 time=N/A bitrate=N/A\r")
    assert scanner.duration_seconds is None
    assert scanner.percent == 0.0


def test_flush_scans_trailing_partial_line():
    scanner = ProgressScanner()
    scanner.feed("Duration: 00:00:10.00\ntime=00:00:10.00")
    assert scanner.percent == 0.0
    assert scanner.flush() is True
    assert scanner.percent == 100.0
