import pytest

from catalog import decode_variant, encode_variant, parse_variant_input
from errors import ValidationError


@pytest.mark.parametrize("value", [
    [],
    {},
    ["Shirts", "T-Shirts"],
    {"size": "M", "fit": "slim"},
    [{"color": "red", "stock": 3, "images": ["a.png", "b.png"]}, {"color": "blue", "stock": 0}],
    {"sizes": {"EU": [38, 39, 40], "US": [6, 7]}, "limited": True, "weight": 0.25, "note": None},
    "plain text",
    ["日本語", "Ünïcödé"],
])
def test_variant_round_trip(value):
    assert decode_variant(encode_variant(value)) == value


def test_absent_and_empty_stay_distinct():
    assert encode_variant(None) is None
    assert decode_variant(None) is None
    assert encode_variant([]) == "[]"
    assert encode_variant({}) == "{}"
    assert decode_variant("[]") == []


def test_sets_are_stored_as_sorted_lists():
    assert decode_variant(encode_variant({"Tops", "Dresses"})) == ["Dresses", "Tops"]


def test_unencodable_values_are_rejected():
    with pytest.raises(ValidationError):
        encode_variant({"bad": object()})
    with pytest.raises(ValidationError):
        encode_variant([float("nan")])


@pytest.mark.parametrize("value", [
    {"sizes": {38: 2, 39: 0}},
    {1: "one"},
    [("S", 2)],
    ("Shirts", "Tops"),
])
def test_values_that_would_change_on_decode_are_rejected(value):
    with pytest.raises(ValidationError):
        encode_variant(value)


def test_legacy_plain_text_is_returned_as_is():
    assert decode_variant("Shirts") == "Shirts"


@pytest.mark.parametrize("raw, expected", [
    (None, None),
    ("", None),
    ("   ", None),
    ('["Shirts", "Tops"]', ["Shirts", "Tops"]),
    ('{"red": {"S": 2}}', {"red": {"S": 2}}),
    ("[]", []),
    ("Shirts", "Shirts"),
    ("2024", "2024"),
    ("true", "true"),
    ("null", "null"),
    ("NaN", "NaN"),
    ('"quoted"', '"quoted"'),
])
def test_parse_variant_input(raw, expected):
    assert parse_variant_input(raw) == expected


@pytest.mark.parametrize("raw", ["2024", "true", "null", "NaN", "Infinity", "Shirts"])
def test_plain_form_text_survives_storage(raw):
    assert decode_variant(encode_variant(parse_variant_input(raw))) == raw
