import pytest

from forkline_core import versionkey
from forkline_core.errors import InvalidInputError


@pytest.mark.parametrize("key", ["v1", "v2_1", "v10", "v0", "v3_0"])
def test_valid_keys(key):
    assert versionkey.is_valid_key(key)


@pytest.mark.parametrize("key", ["", "1", "V1", "v", "v1.2", "v1_", "v1_2_3", "va", None])
def test_invalid_keys(key):
    assert not versionkey.is_valid_key(key)


def test_conversions():
    assert versionkey.to_file_version("v2_1") == "2_1"
    assert versionkey.to_display_label("v2_1") == "V2.1"
    assert versionkey.to_display_label("v3") == "V3"
    assert versionkey.to_import_suffix("v2_1") == "V2_1"
    assert versionkey.format_key(4) == "v4"
    assert versionkey.format_key(4, 2) == "v4_2"


def test_zero_minor_is_canonicalized():
    assert versionkey.canonical("v1_0") == "v1"
    assert versionkey.same_version("v1_0", "v1")
    assert not versionkey.same_version("v1_1", "v1")


def test_conversions_reject_invalid_input():
    with pytest.raises(InvalidInputError):
        versionkey.to_display_label("1.2")
    with pytest.raises(ValueError):
        versionkey.to_file_version("bogus")


def test_sort_is_numeric_not_lexicographic():
    keys = ["v10", "v2", "v1_1", "v1", "v2_10", "v2_9"]
    assert versionkey.sort_keys(keys) == ["v1", "v1_1", "v2", "v2_9", "v2_10", "v10"]


def test_next_key_skips_gaps_and_ignores_minors():
    assert versionkey.next_key([]) == "v1"
    assert versionkey.next_key(["v1", "v3"]) == "v4"
    assert versionkey.next_key(["v1", "v1_5"]) == "v2"
    assert versionkey.next_key(["v1", "v2_3"]) == "v3"
    assert versionkey.next_major(["v1", "v2_3", "bogus"]) == 3
    assert versionkey.next_major([]) == 1


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2", "v2"),
        ("2.1", "v2_1"),
        ("V2.1", "v2_1"),
        (" v4 ", "v4"),
        ("vv3", "v3"),
        ("2_1", "v2_1"),
        ("abc", None),
        ("", None),
        ("1.2.3", None),
        ("v", None),
        ("v1.2.3", None),
        ("1", "v1"),
        ("V2.3", "v2_3"),
    ],
)
def test_normalize_user_input(raw, expected):
    assert versionkey.normalize_user_input(raw) == expected
