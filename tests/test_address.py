import pytest

from tokenstate.address import (
    HRP,
    address,
    bech32_decode,
    bech32_encode,
    parse_address,
)


def test_bip173_minimal_vector_decodes():
    assert bech32_decode("a12uel5l") == ("a", b"")


def test_bip173_minimal_vector_encodes():
    assert bech32_encode("a", b"") == "a12uel5l"


def test_uppercase_string_decodes():
    assert bech32_decode("A12UEL5L") == ("a", b"")


def test_mixed_case_rejected():
    with pytest.raises(ValueError):
        bech32_decode("A12uel5l")


def test_bad_checksum_rejected():
    with pytest.raises(ValueError):
        bech32_decode("a12uel5m")


def test_bech32_round_trip_bytes():
    data = bytes(range(20))
    assert bech32_decode(bech32_encode("abc", data)) == ("abc", data)


@pytest.mark.parametrize("fill", [0, 1, 200])
def test_address_round_trip(fill):
    key = bytes([fill]) * 32
    text = address(key)
    assert text.startswith(HRP + "1")
    assert parse_address(text) == key


def test_address_custom_hrp_round_trip():
    key = bytes(range(32))
    assert parse_address(address(key, "other"), "other") == key


def test_parse_address_wrong_hrp():
    key = bytes(range(32))
    with pytest.raises(ValueError):
        parse_address(address(key, "other"))


def test_address_rejects_short_key():
    with pytest.raises(ValueError):
        address(b"\x01" * 31)


def test_parse_address_rejects_short_payload():
    with pytest.raises(ValueError):
        parse_address(bech32_encode(HRP, b"\x01" * 20))