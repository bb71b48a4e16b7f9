from __future__ import annotations

from typing import Callable, Iterable, Optional

from .entities import Track


def text_query(track: Track) -> str:
    """Free-text query combining artist and name, artist first."""
    parts = [(track.artist or "").strip(), (track.name or "").strip()]
    return " ".join(p for p in parts if p)


def resolve_track(track: Track,
                  by_text: Callable[[Track], Optional[Track]],
                  by_isrc: Optional[Callable[[str], Optional[Track]]] = None) -> Optional[Track]:
    """Apply the ISRC-then-text search order shared by all adapters.

    ``by_isrc`` is consulted only when the track carries an ISRC and the
    platform supports ISRC lookup. An ISRC hit wins even if text search would
    return a different track.
    """
    if track.isrc and by_isrc is not None:
        found = by_isrc(track.isrc)
        if found is not None:
            return found

    if not text_query(track):
        return None
    return by_text(track)


def join_artists(names: Iterable[str]) -> str:
    """Comma-join artist names, dropping empties."""
    return ", ".join(n for n in (names or []) if n)
