from ayah_reels.core.errors import InputValidationError
from ayah_reels.models.schemas import TimelineEntry, Verse


def build_timeline(verses: list[Verse]) -> list[TimelineEntry]:
    """Lay verses end to end starting at zero; each end is the next start."""
    timeline: list[TimelineEntry] = []
    cursor = 0.0
    for verse in verses:
        if verse.duration is None:
            raise InputValidationError(f"Ayah {verse.number} has no probed duration")
        start = cursor
        end = start + verse.duration
        verse.start_time = start
        timeline.append(TimelineEntry(verse=verse, start_time=start, end_time=end))
        cursor = end
    return timeline


def total_duration(timeline: list[TimelineEntry]) -> float:
    return timeline[-1].end_time if timeline else 0.0
