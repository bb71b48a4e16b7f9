from typing import Callable, Generator, List, Optional
import logging

from tunebridge.crosscutting.logging import log_phase, log_transfer_complete, log_with_fields
from tunebridge.domain.entities import Track, TransferPhase, TransferProgress, TransferResult
from tunebridge.domain.errors import NotFound
from tunebridge.domain.ports import MusicProvider


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[TransferProgress], None]


def _progress(phase: TransferPhase, current: int, total: int, message: str) -> TransferProgress:
    log_phase(logger, phase.value, message, current=current, total=total)
    return TransferProgress(phase=phase, current=current, total=total, message=message)


def iter_transfer(source_provider: MusicProvider,
                  target_provider: MusicProvider,
                  source_token: str,
                  target_token: str,
                  playlist_id: str) -> Generator[TransferProgress, None, TransferResult]:
    """Transfer a playlist, yielding progress and returning the result.

    Phases run strictly in order: fetching, reading, creating, matching (one
    event per track), transferring, complete. Any exception raised by a
    provider aborts the transfer; a target playlist that was already created
    is left in place. Search misses land in ``unmatched`` and per-item add
    failures are only counted by the provider.

    Nothing is shared between invocations, so concurrent transfers are
    independent. Closing the generator stops the transfer at the next yield.
    """
    # Phase 1: locate the source playlist in the owner's listing
    yield _progress(TransferPhase.FETCHING, 0, 0, 'Fetching playlist details...')
    playlists = source_provider.get_playlists(source_token)
    source_playlist = next((p for p in playlists if p.id == playlist_id), None)
    if source_playlist is None:
        raise NotFound(f"Playlist {playlist_id} not found")

    # Phase 2: read all tracks; the listing's count may be stale
    yield _progress(TransferPhase.READING, 0, 0, f'Reading tracks from "{source_playlist.name}"...')
    source_tracks = list(source_provider.get_playlist_tracks(source_token, playlist_id))
    source_playlist.tracks = source_tracks
    source_playlist.track_count = len(source_tracks)
    total = len(source_tracks)

    # Phase 3: create the target playlist (never deduplicated, never rolled back)
    yield _progress(TransferPhase.CREATING, 0, total,
                    f'Creating "{source_playlist.name}" on {target_provider.name}...')
    description = source_playlist.description or f'Transferred from {source_provider.name}'
    target_playlist_id = target_provider.create_playlist(target_token, source_playlist.name, description)

    # Phase 4: resolve each track on the target, one search at a time
    matched: List[Track] = []
    unmatched: List[Track] = []

    for index, track in enumerate(source_tracks, start=1):
        yield TransferProgress(
            phase=TransferPhase.MATCHING,
            current=index,
            total=total,
            message=f'Matching: {track.artist} - {track.name}',
        )
        found = target_provider.search_track(target_token, track)
        if found is not None:
            matched.append(found)
        else:
            unmatched.append(track)
        log_with_fields(logger, 'DEBUG', 'Track resolved' if found else 'Track not found',
                        index=index, source_track_id=track.id,
                        target_track_id=found.id if found else None)

    # Phase 5: single bulk add of everything search resolved
    yield _progress(TransferPhase.TRANSFERRING, 0, len(matched), f'Adding {len(matched)} tracks...')
    add_result = target_provider.add_tracks(target_token, target_playlist_id, matched)
    if add_result.failed:
        log_with_fields(logger, 'WARNING', 'Some matched tracks could not be added',
                        target_playlist_id=target_playlist_id,
                        added=add_result.added, failed=add_result.failed)

    log_transfer_complete(logger, total_tracks=total, matched=len(matched), unmatched=len(unmatched),
                          added=add_result.added, failed=add_result.failed,
                          target_playlist_id=target_playlist_id)
    yield TransferProgress(
        phase=TransferPhase.COMPLETE,
        current=len(matched),
        total=total,
        message=f'Done! {add_result.added} added, {len(unmatched)} unmatched.',
    )

    return TransferResult(
        source_playlist=source_playlist,
        target_playlist_id=target_playlist_id,
        matched=matched,
        unmatched=unmatched,
        total_tracks=total,
    )


def transfer_playlist(source_provider: MusicProvider,
                      target_provider: MusicProvider,
                      source_token: str,
                      target_token: str,
                      playlist_id: str,
                      on_progress: Optional[ProgressCallback] = None) -> TransferResult:
    """Run a transfer to completion, reporting progress through ``on_progress``.

    The callback is invoked synchronously between provider calls and must not
    block for long.
    """
    events = iter_transfer(source_provider, target_provider, source_token, target_token, playlist_id)
    while True:
        try:
            progress = next(events)
        except StopIteration as stop:
            return stop.value
        if on_progress is not None:
            on_progress(progress)
