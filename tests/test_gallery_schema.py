from pathlib import Path

import pytest

from plana.schemas.gallery import (
    GalleryPayloadError,
    decode_payload,
    normalize_js_payload,
)


def _fixture_path(name: str) -> Path:
    return Path(__file__).parent / "fixtures" / name


def test_normalize_strips_assignment_and_semicolon() -> None:
    raw = '  var galleryinfo = {"title": "x"};  \n'
    assert normalize_js_payload(raw) == '{"title": "x"}'


def test_normalize_accepts_any_identifier() -> None:
    assert normalize_js_payload('var info_2 = {"n": "y"}') == '{"n": "y"}'


def test_normalize_leaves_bare_json_untouched() -> None:
    assert normalize_js_payload('{"title": "x"}') == '{"title": "x"}'


def test_decode_object_entries_fixture() -> None:
    text = normalize_js_payload(
        _fixture_path("galleryinfo_objects.js").read_text(encoding="utf-8")
    )
    raw = decode_payload(text)

    assert raw.title == "Sample Title"
    assert raw.language_localname == "한국어"
    assert raw.language == "korean"
    assert raw.artists == ("first artist", "second artist")
    assert raw.tags == ("full color", "glasses", "full color")
    assert raw.n is None
    assert raw.t == ()


def test_decode_legacy_fixture_drops_malformed_entries() -> None:
    text = normalize_js_payload(
        _fixture_path("galleryinfo_legacy.js").read_text(encoding="utf-8")
    )
    raw = decode_payload(text)

    assert raw.title is None
    assert raw.n == "Legacy Title"
    assert raw.a == ("legacy artist",)
    assert raw.t == ("tag one", "tag two", "tag three")
    assert raw.language == "english"


def test_decode_drops_null_and_empty_wrappers() -> None:
    raw = decode_payload(
        '{"tags": [null, {"tag": null}, {"url": "/x"}, "kept"], "artists": null}'
    )
    assert raw.tags == ("kept",)
    assert raw.artists == ()


@pytest.mark.parametrize(
    "text",
    [
        "not json at all",
        '{"title": "x"',
        "[1, 2, 3]",
        '"just a string"',
        '{"title": 5}',
        '{"tags": "not-a-list"}',
    ],
)
def test_decode_rejects_bad_documents(text: str) -> None:
    with pytest.raises(GalleryPayloadError):
        decode_payload(text)
