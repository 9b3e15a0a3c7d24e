import base64
import gzip
import json
import math

import pytest

from idlesave import codec
from idlesave.errors import DecodeError


def test_round_trip_preserves_player(make_player) -> None:
    player = make_player(antimatter=1.5e30, infinities=3)
    player["dimensions"]["antimatter"] = [{"amount": 4, "bought": 10}]

    assert codec.decode(codec.encode(player)) == player


def test_encoding_is_deterministic_regardless_of_key_order(make_player) -> None:
    player = make_player()
    reordered = dict(reversed(list(player.items())))

    assert codec.encode(player) == codec.encode(reordered)
    assert codec.fingerprint(player) == codec.fingerprint(reordered)


def test_fingerprint_changes_with_content(make_player) -> None:
    assert codec.fingerprint(make_player(antimatter=1)) != codec.fingerprint(make_player(antimatter=2))


def test_root_slot_keys_come_back_as_ints(make_player) -> None:
    root = {"current": 1, "saves": {0: make_player(), 1: None, 2: None}}

    decoded = codec.decode(codec.encode(root))

    assert set(decoded["saves"]) == {0, 1, 2}
    assert decoded["current"] == 1
    assert decoded["saves"][1] is None


def test_nan_survives_so_the_validator_can_see_it(make_player) -> None:
    player = make_player(antimatter=float("nan"))

    decoded = codec.decode(codec.encode(player))

    assert math.isnan(decoded["antimatter"])


@pytest.mark.parametrize(
    "text",
    [None, "", "   ", "hello world", "IdleSaveFormatAAB!!!!EndOfSavefile", "IdleSaveFormatAABeJzLSM3JyQcABiwCFQ"],
)
def test_decode_rejects_foreign_text(text) -> None:
    with pytest.raises(DecodeError):
        codec.decode(text)
    assert codec.try_decode(text) is None


def test_decode_accepts_headerless_legacy_text(make_player) -> None:
    player = make_player()
    body = codec.encode(player)[len(codec.SAVE_HEADER) : -len(codec.SAVE_FOOTER)]

    assert codec.decode(body) == player


def test_decode_bundled_reads_gzip_base64url_blob(make_player) -> None:
    player = make_player(antimatter=777)
    raw = gzip.compress(json.dumps(player).encode("utf-8"))
    blob = base64.b64encode(raw).decode("ascii").replace("+", "-").replace("/", "_").rstrip("=")

    assert codec.decode_bundled(blob) == player


def test_decode_bundled_rejects_garbage() -> None:
    with pytest.raises(DecodeError):
        codec.decode_bundled("not-a-save")


def test_export_normalization_is_restored(make_player) -> None:
    player = make_player(speedrun={"isSegmented": False})

    exported = codec.decode(codec.encode_for_export(player))

    assert exported["speedrun"]["isSegmented"] is True
    assert player["speedrun"]["isSegmented"] is False


def test_export_normalization_restored_when_encoding_fails(make_player) -> None:
    player = make_player(speedrun={"isSegmented": False})
    player["unserializable"] = object()

    with pytest.raises(ValueError):
        codec.encode_for_export(player)
    assert player["speedrun"]["isSegmented"] is False
