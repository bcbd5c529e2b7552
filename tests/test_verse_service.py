import pytest

from ayah_reels.core.errors import InputValidationError, NotFoundError, UpstreamError
from ayah_reels.services.verse_service import VerseResolver, fallback_audio_url
from fakes import FakeResponse, FakeSession, editions_payload

URL = "http://quran.test/v1/surah/1/editions/ar.alafasy,en.sahih"


def _resolver(response):
    session = FakeSession({URL: response})
    return VerseResolver(session=session, sleep=lambda _: None), session


def test_resolve_slices_range_and_pairs_translation():
    resolver, _ = _resolver(FakeResponse(200, payload=editions_payload()))

    verses = resolver.resolve(1, "ar.alafasy", "en.sahih", 2, 4)

    assert [v.number for v in verses] == [2, 3, 4]
    assert verses[0].source_text == "آية 2"
    assert verses[0].translation_text == "Verse number 2 in translation"
    assert verses[2].audio_source == "https://cdn.example/ar.alafasy/4.mp3"
    assert all(v.duration is None and v.start_time is None for v in verses)


@pytest.mark.parametrize(("start", "end"), [(1, 1), (1, 7), (3, 5)])
def test_verse_count_matches_range(start, end):
    resolver, _ = _resolver(FakeResponse(200, payload=editions_payload()))
    assert len(resolver.resolve(1, "ar.alafasy", "en.sahih", start, end)) == end - start + 1


def test_missing_audio_uses_padded_fallback_url():
    resolver, _ = _resolver(FakeResponse(200, payload=editions_payload(with_audio=False)))

    verses = resolver.resolve(1, "ar.alafasy", "en.sahih", 1, 2)

    assert verses[1].audio_source == "https://everyayah.com/data/ar.alafasy/001002.mp3"
    assert fallback_audio_url("ar.husary", 114, 6) == "https://everyayah.com/data/ar.husary/114006.mp3"


def test_edition_lookup_is_exact():
    payload = editions_payload(reciter_id="ar.alafasy.hq")
    resolver, _ = _resolver(FakeResponse(200, payload=payload))

    with pytest.raises(NotFoundError) as excinfo:
        resolver.resolve(1, "ar.alafasy", "en.sahih", 1, 3)

    assert "ar.alafasy" in str(excinfo.value)
    assert excinfo.value.details["available"] == ["ar.alafasy.hq", "en.sahih"]
    assert "ar.alafasy.hq" in excinfo.value.details["suggestions"]


def test_missing_translation_edition_is_not_found():
    payload = editions_payload(translation_id="en.asad")
    resolver, _ = _resolver(FakeResponse(200, payload=payload))

    with pytest.raises(NotFoundError):
        resolver.resolve(1, "ar.alafasy", "en.sahih", 1, 3)


def test_empty_range_is_rejected_before_downloads():
    resolver, session = _resolver(FakeResponse(200, payload=editions_payload(count=7)))

    with pytest.raises(InputValidationError):
        resolver.resolve(1, "ar.alafasy", "en.sahih", 8, 10)
    assert session.calls == [URL]


def test_inverted_range_fails_fast():
    resolver, session = _resolver(FakeResponse(200, payload=editions_payload()))

    with pytest.raises(InputValidationError):
        resolver.resolve(1, "ar.alafasy", "en.sahih", 4, 2)
    assert session.calls == []


def test_provider_server_error_is_upstream_error():
    resolver, session = _resolver([FakeResponse(500)])

    with pytest.raises(UpstreamError) as excinfo:
        resolver.resolve(1, "ar.alafasy", "en.sahih", 1, 3)
    assert excinfo.value.service == "content provider"
    assert len(session.calls) == 4


def test_provider_client_error_is_not_retried():
    resolver, session = _resolver(FakeResponse(400))

    with pytest.raises(UpstreamError):
        resolver.resolve(1, "ar.alafasy", "en.sahih", 1, 3)
    assert len(session.calls) == 1


def test_provider_error_payload_is_upstream_error():
    resolver, _ = _resolver(FakeResponse(200, payload={"code": 404, "status": "NOT FOUND", "data": "Not found"}))

    with pytest.raises(UpstreamError):
        resolver.resolve(1, "ar.alafasy", "en.sahih", 1, 3)
