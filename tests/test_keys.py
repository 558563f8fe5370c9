import pytest

from timed_storage.core.exceptions import InvalidKeyError
from timed_storage.core.keys import (
    SEPARATOR,
    decode_key,
    encode_key,
    increment_string,
    join_key,
    prefix_bounds,
    split_key,
)


def test_split_dotted_string():
    assert split_key("users.42.profile") == ("users", "42", "profile")
    assert split_key("single") == ("single",)


def test_split_presegmented_is_used_as_is():
    assert split_key(["a.b", "c"]) == ("a.b", "c")
    assert split_key(("x",)) == ("x",)


def test_split_empty_is_root():
    assert split_key("") == ()
    assert split_key([]) == ()


@pytest.mark.parametrize("bad", ["a..b", ".a", "a.", ["a", ""], ["a", 1], 42, ["a\nb"]])
def test_split_rejects_malformed_keys(bad):
    with pytest.raises(InvalidKeyError):
        split_key(bad)


def test_invalid_key_is_a_value_error():
    with pytest.raises(ValueError):
        split_key("a..b")


def test_join_and_encode_are_reversible():
    segments = ("a", "b", "c")
    assert join_key(segments) == "a.b.c"
    assert decode_key(encode_key(segments)) == segments
    assert decode_key("") == ()


def test_encoded_order_matches_segment_order():
    keys = [("a", "b"), ("a-b",), ("a",), ("a", "b", "c"), ("ab",), ("a", "bc")]
    assert sorted(keys, key=encode_key) == sorted(keys)


def test_increment_string_bumps_last_character():
    assert increment_string("abc") == "abd"
    assert increment_string("a" + SEPARATOR) == "a "


def test_increment_string_has_no_successor_for_max_code_point():
    with pytest.raises(ValueError):
        increment_string("a\U0010ffff")
    with pytest.raises(ValueError):
        increment_string("")


def test_prefix_bounds_exclude_sibling_with_longer_segment():
    lower, upper = prefix_bounds(("a", "b"))

    def inside(segments):
        stored = encode_key(segments)
        return lower <= stored < upper

    assert inside(("a", "b"))
    assert inside(("a", "b", "c"))
    assert inside(("a", "b", "zzz", "y"))
    assert not inside(("a", "bc"))
    assert not inside(("a",))
    assert not inside(("a", "c"))


def test_prefix_bounds_root_is_unbounded():
    assert prefix_bounds(()) == (None, None)
