import pytest

from item_store import format_duration, format_file_size, parse_duration


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0, "0:00"),
        (5, "0:05"),
        (59, "0:59"),
        (60, "1:00"),
        (599, "9:59"),
        (3599, "59:59"),
        (3600, "1:00:00"),
        (3661, "1:01:01"),
        (36000, "10:00:00"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_format_duration_never_raises_on_bad_input():
    assert format_duration(None) == "0:00"
    assert format_duration("abc") == "0:00"
    assert format_duration(-12) == "0:00"
    assert format_duration(float("nan")) == "0:00"
    assert format_duration(float("inf")) == "0:00"


def test_format_duration_floors_fractional_seconds():
    assert format_duration(61.9) == "1:01"


def test_parse_duration_inverts_format_duration():
    for seconds in (0, 1, 59, 61, 3599, 3600, 3661, 86399, 90061):
        text = format_duration(seconds)
        assert parse_duration(text) == seconds
        assert format_duration(parse_duration(text)) == text


def test_parse_duration_rejects_non_canonical_strings():
    assert parse_duration("75:00") is None
    assert parse_duration("0:00:10") is None
    assert parse_duration("1:5") is None
    assert parse_duration("") is None
    assert parse_duration(None) is None


@pytest.mark.parametrize(
    "size, expected",
    [
        (0, "0 Bytes"),
        (512, "512 Bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5 MB"),
        (3 * 1024 ** 3, "3 GB"),
        (2 * 1024 ** 4, "2 TB"),
    ],
)
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


def test_format_file_size_handles_garbage():
    assert format_file_size(None) == "0 Bytes"
    assert format_file_size(-10) == "0 Bytes"
