import pytest

from wa_proxy.addressing import country_of, normalize_destination, to_jid
from wa_proxy.errors import InvalidDestinationError, MessageValidationError


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0501234567", "+966501234567"),
        ("966501234567", "+966501234567"),
        ("501234567", "+966501234567"),
        ("+966 50 123 4567", "+966501234567"),
        ("00966501234567", "+966501234567"),
        ("0112345678", "+966112345678"),
        ("01012345678", "+201012345678"),
        ("201012345678", "+201012345678"),
        ("1012345678", "+201012345678"),
        ("0223456789", "+20223456789"),
        ("966501234567@s.whatsapp.net", "+966501234567"),
    ],
)
def test_normalize_supported_numbers(raw, expected):
    assert normalize_destination(raw) == expected


@pytest.mark.parametrize("raw", ["12345", "+15551234567", "0599", "abc"])
def test_normalize_rejects_unsupported_numbers(raw):
    with pytest.raises(InvalidDestinationError) as excinfo:
        normalize_destination(raw)
    assert excinfo.value.raw == raw
    assert excinfo.value.code == "invalid_destination"


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_normalize_rejects_missing_destination(raw):
    with pytest.raises(MessageValidationError, match="Missing destination"):
        normalize_destination(raw)


def test_country_of():
    assert country_of("+966501234567") == "SA"
    assert country_of("+201012345678") == "EG"
    assert country_of("+15551234567") is None


def test_to_jid():
    assert to_jid("+966501234567") == "966501234567@s.whatsapp.net"
