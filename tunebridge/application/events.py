import json
import logging
from typing import Any, Dict, Iterator

from tunebridge.application.pipeline import iter_transfer
from tunebridge.crosscutting.logging import log_error
from tunebridge.domain.ports import MusicProvider


logger = logging.getLogger(__name__)

EVENT_COMPLETE = 'complete'
EVENT_ERROR = 'error'


def transfer_events(source_provider: MusicProvider,
                    target_provider: MusicProvider,
                    source_token: str,
                    target_token: str,
                    playlist_id: str) -> Iterator[Dict[str, Any]]:
    """Run a transfer as a one-way stream of JSON-ready events.

    Yields each progress notification as ``{phase, current, total, message}``
    followed by exactly one terminal event: ``{"type": "complete", "result":
    ...}`` or ``{"type": "error", "error": "<message>"}``. A failure never
    yields a partial result.
    """
    events = iter_transfer(source_provider, target_provider, source_token, target_token, playlist_id)
    try:
        while True:
            try:
                progress = next(events)
            except StopIteration as stop:
                result = stop.value
                break
            yield progress.to_json()
    except Exception as e:
        log_error(logger, 'Transfer failed', e, playlist_id=playlist_id)
        yield {'type': EVENT_ERROR, 'error': str(e) or type(e).__name__}
        return
    finally:
        events.close()

    yield {'type': EVENT_COMPLETE, 'result': result.to_json()}


def format_sse(event: Dict[str, Any]) -> str:
    """Encode one event as a Server-Sent Events ``data:`` frame."""
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"
