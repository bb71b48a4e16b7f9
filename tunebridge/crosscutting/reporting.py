import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Any, Optional

from tunebridge.domain.entities import Track, TransferResult


@dataclass
class ReportHeader:
    """Header information for a transfer report."""

    transfer_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    source: str = ""
    target: str = ""

    def to_json(self) -> Dict[str, Any]:
        """Serialize header to JSON."""
        return {
            "transferId": self.transfer_id,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "source": self.source,
            "target": self.target,
        }


@dataclass
class PlaylistSummary:
    """Summary statistics for a playlist transfer."""

    source_playlist_id: str
    target_playlist_id: str
    name: str
    totals: Dict[str, int] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        """Serialize playlist summary to JSON."""
        return {
            "sourcePlaylistId": self.source_playlist_id,
            "targetPlaylistId": self.target_playlist_id,
            "name": self.name,
            "totals": self.totals,
        }


@dataclass
class TransferReport:
    """Persisted record of one transfer: what matched and what did not."""

    header: ReportHeader
    playlist: PlaylistSummary
    matched: List[Track] = field(default_factory=list)
    unmatched: List[Track] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        """Serialize report to JSON."""
        return {
            "header": self.header.to_json(),
            "playlist": self.playlist.to_json(),
            "matched": [t.to_json() for t in self.matched],
            "unmatched": [t.to_json() for t in self.unmatched],
        }


def create_report(transfer_id: str, source: str, target: str, started_at: datetime,
                  result: TransferResult) -> TransferReport:
    """Build a report from a finished transfer."""
    header = ReportHeader(
        transfer_id=transfer_id,
        started_at=started_at,
        finished_at=datetime.now(timezone.utc),
        source=source,
        target=target,
    )
    summary = PlaylistSummary(
        source_playlist_id=result.source_playlist.id,
        target_playlist_id=result.target_playlist_id,
        name=result.source_playlist.name,
        totals={
            "total": result.total_tracks,
            "matched": len(result.matched),
            "unmatched": len(result.unmatched),
        },
    )
    return TransferReport(
        header=header,
        playlist=summary,
        matched=list(result.matched),
        unmatched=list(result.unmatched),
    )


def write_report(report: TransferReport, directory: str) -> str:
    """Write the report as JSON into ``directory`` and return the file path."""
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, f"transfer_report_{report.header.transfer_id}.json")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.to_json(), f, indent=2, ensure_ascii=False)
    return path
