import pytest

from botbridge.routing import SEPARATOR, RoutingKey, RoutingKeyError


@pytest.mark.parametrize(
    "channel,native_id",
    [
        ("hangouts", "users/42spaces/7"),
        ("slack", "U123"),
        ("hangouts", ""),
        ("web", "user with spaces/and:colons"),
    ],
)
def test_encode_decode_round_trip(channel, native_id):
    encoded = RoutingKey(channel, native_id).encode()
    assert encoded == f"{channel}{SEPARATOR}{native_id}"
    assert RoutingKey.decode(encoded) == RoutingKey(channel, native_id)


def test_encode_rejects_separator_in_native_id():
    with pytest.raises(RoutingKeyError):
        RoutingKey("hangouts", "users/42|spaces/7").encode()


def test_encode_rejects_separator_in_channel():
    with pytest.raises(RoutingKeyError):
        RoutingKey("hang|outs", "users/42").encode()


def test_encode_rejects_empty_channel():
    with pytest.raises(RoutingKeyError):
        RoutingKey("", "users/42").encode()


@pytest.mark.parametrize("value", ["users/42spaces/7", "|users/42", ""])
def test_decode_rejects_values_without_channel(value):
    with pytest.raises(RoutingKeyError):
        RoutingKey.decode(value)
