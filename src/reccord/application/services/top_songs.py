"""Top Songs merge engine - normalize, deduplicate, rank, select.

Hey future me - this module is PURE. No I/O, no logging of consequence, no clock.
Everything the orchestrator needs to turn "tracks per source" into "the ranked top 10"
lives here so it can be unit-tested without mocks.

Pipeline:
    ProviderTrack (per source) --normalize--> UnifiedTrack (one tag)
    --merge_tracks (dedup by key, Spotify first)--> unique UnifiedTracks (insertion order)
    --sort_tracks_by_play_count--> ranked --select_top(10)--> published items
"""

from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import UTC, datetime

from reccord.domain.entities import (
    SOURCE_ORDER,
    ProviderTrack,
    SourceService,
    UnifiedTrack,
)

TOP_SONGS_LIMIT = 10


def normalize(track: ProviderTrack, service: SourceService) -> UnifiedTrack:
    """Map a provider track into the unified shape, tagged with one service."""
    return UnifiedTrack(
        name=track.name,
        artist=track.artist,
        album=track.album,
        url=track.url,
        isrc=track.isrc,
        play_count=track.play_count,
        last_played_at=track.last_played_at,
        source_services={service},
    )


# Listen up - this key is deliberately simple. Same song with an ISRC on one side and no
# ISRC on the other gets two DIFFERENT keys and won't merge. That's an accepted
# approximation, don't "fix" it by adding fuzzy matching here.
def dedup_key(track: UnifiedTrack) -> str:
    """Identity key used to merge tracks across sources."""
    isrc = (track.isrc or "").strip()
    if isrc:
        return f"isrc:{isrc}"
    name = track.name.strip().lower()
    artist = track.artist.strip().lower()
    return f"name:{name}|artist:{artist}"


def _merge_into(existing: UnifiedTrack, incoming: UnifiedTrack) -> None:
    existing.play_count += incoming.play_count
    existing.source_services |= incoming.source_services
    # Keep existing url/isrc unless empty - first source wins on conflicts
    if not existing.url and incoming.url:
        existing.url = incoming.url
    if not existing.isrc and incoming.isrc:
        existing.isrc = incoming.isrc
    # None never beats a real timestamp
    if incoming.last_played_at is not None and (
        existing.last_played_at is None
        or _as_utc(incoming.last_played_at) > _as_utc(existing.last_played_at)
    ):
        existing.last_played_at = incoming.last_played_at


def merge_tracks(track_sets: Iterable[Iterable[UnifiedTrack]]) -> list[UnifiedTrack]:
    """Deduplicate tracks from several sources.

    Sources are processed one after another in the given order, tracks within a
    source in their own order. Output is insertion order, not ranked. Inputs are
    never mutated.
    """
    merged: dict[str, UnifiedTrack] = {}
    for tracks in track_sets:
        for track in tracks:
            key = dedup_key(track)
            existing = merged.get(key)
            if existing is None:
                merged[key] = replace(track, source_services=set(track.source_services))
            else:
                _merge_into(existing, track)
    return list(merged.values())


def _as_utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def _rank_key(track: UnifiedTrack) -> tuple[int, int, float]:
    if track.last_played_at is None:
        return (-track.play_count, 1, 0.0)
    return (-track.play_count, 0, -_as_utc(track.last_played_at).timestamp())


def sort_tracks_by_play_count(tracks: Iterable[UnifiedTrack]) -> list[UnifiedTrack]:
    """Play count desc, then last play desc with timestamps ahead of None.

    Stable, so two tracks with equal count and no timestamp keep their order.
    """
    return sorted(tracks, key=_rank_key)


def select_top(tracks: Iterable[UnifiedTrack], limit: int = TOP_SONGS_LIMIT) -> list[UnifiedTrack]:
    """Rank and truncate. Fewer than ``limit`` tracks are all returned."""
    return sort_tracks_by_play_count(tracks)[:limit]


def process_top_songs(
    tracks_by_source: Mapping[SourceService, Iterable[ProviderTrack]],
    limit: int = TOP_SONGS_LIMIT,
) -> list[UnifiedTrack]:
    """Full pipeline: normalize every source, merge Spotify first, rank, top N."""
    normalized = [
        [normalize(track, service) for track in tracks_by_source[service]]
        for service in SOURCE_ORDER
        if service in tracks_by_source
    ]
    return select_top(merge_tracks(normalized), limit=limit)
