from __future__ import annotations

import logging
import time
from typing import Callable

import requests
from rapidfuzz import fuzz, process

from ayah_reels.core.config import settings
from ayah_reels.core.errors import InputValidationError, NotFoundError, UpstreamError
from ayah_reels.core.retry import retry_http
from ayah_reels.models.schemas import Verse

logger = logging.getLogger(__name__)

PROVIDER_NAME = "content provider"


def fallback_audio_url(reciter_id: str, surah: int, ayah: int) -> str:
    return settings.fallback_audio_template.format(reciter=reciter_id, surah=surah, ayah=ayah)


def _closest(identifier: str, available: list[str]) -> list[str]:
    if not available:
        return []
    matches = process.extract(identifier, available, scorer=fuzz.ratio, limit=3)
    return [match for match, score, _ in matches if score >= 50]


class VerseResolver:
    def __init__(self, session: requests.Session | None = None, sleep: Callable[[float], None] = time.sleep) -> None:
        self.session = session or requests.Session()
        self._sleep = sleep

    def editions_url(self, surah: int, reciter_id: str, translation_id: str) -> str:
        return f"{settings.provider_base_url.rstrip('/')}/surah/{surah}/editions/{reciter_id},{translation_id}"

    def fetch_editions(self, surah: int, reciter_id: str, translation_id: str) -> list[dict]:
        url = self.editions_url(surah, reciter_id, translation_id)
        logger.info("Fetching editions %s,%s for surah %d", reciter_id, translation_id, surah)

        def _get() -> requests.Response:
            response = self.session.get(url, timeout=settings.request_timeout)
            response.raise_for_status()
            return response

        try:
            response = retry_http(_get, label=f"GET {url}", sleep=self._sleep)
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise UpstreamError(PROVIDER_NAME, str(exc)) from exc

        if not isinstance(payload, dict) or payload.get("code", 200) != 200:
            status = payload.get("status") if isinstance(payload, dict) else None
            raise UpstreamError(PROVIDER_NAME, f"unexpected response status {status!r}")
        editions = payload.get("data")
        if not isinstance(editions, list):
            raise UpstreamError(PROVIDER_NAME, "response has no editions array")
        return [row for row in editions if isinstance(row, dict)]

    @staticmethod
    def find_edition(editions: list[dict], identifier: str) -> dict:
        for edition in editions:
            meta = edition.get("edition") or {}
            if meta.get("identifier") == identifier:
                return edition
        available = [str((row.get("edition") or {}).get("identifier", "")) for row in editions]
        available = [item for item in available if item]
        raise NotFoundError(
            f"Edition {identifier!r}",
            details={"available": available, "suggestions": _closest(identifier, available)},
        )

    def resolve(self, surah: int, reciter_id: str, translation_id: str, ayah_start: int, ayah_end: int) -> list[Verse]:
        if ayah_end < ayah_start:
            raise InputValidationError("End Ayah must be greater than or equal to Start Ayah")

        editions = self.fetch_editions(surah, reciter_id, translation_id)
        recitation = self.find_edition(editions, reciter_id)
        translation = self.find_edition(editions, translation_id)

        translated = {
            int(row["numberInSurah"]): str(row.get("text", ""))
            for row in translation.get("ayahs") or []
            if isinstance(row, dict) and row.get("numberInSurah") is not None
        }

        verses: list[Verse] = []
        for row in recitation.get("ayahs") or []:
            if not isinstance(row, dict) or row.get("numberInSurah") is None:
                continue
            number = int(row["numberInSurah"])
            if not ayah_start <= number <= ayah_end:
                continue
            if number not in translated:
                raise NotFoundError(f"Translation {translation_id!r} for ayah {number}")
            verses.append(
                Verse(
                    number=number,
                    source_text=str(row.get("text", "")),
                    translation_text=translated[number],
                    audio_source=row.get("audio") or fallback_audio_url(reciter_id, surah, number),
                )
            )

        verses.sort(key=lambda verse: verse.number)
        if not verses:
            raise InputValidationError(
                f"No ayat found in range {ayah_start}-{ayah_end} for surah {surah}",
                details={"surah": surah, "ayah_start": ayah_start, "ayah_end": ayah_end},
            )
        logger.info("Resolved %d verses for surah %d (%d-%d)", len(verses), surah, ayah_start, ayah_end)
        return verses
