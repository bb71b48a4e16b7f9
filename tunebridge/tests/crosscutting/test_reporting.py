import json
import os
from datetime import datetime, timezone

from tunebridge.crosscutting.reporting import ReportHeader, create_report, write_report
from tunebridge.domain.entities import Playlist, Track, TransferResult


def _result():
    return TransferResult(
        source_playlist=Playlist(id="pl-1", name="Road Trip", track_count=3),
        target_playlist_id="new-1",
        matched=[Track(id="t1", name="Song One", artist="Artist One", isrc="ISRC001"),
                 Track(id="t2", name="Song Two", artist="Artist Two")],
        unmatched=[Track(id="s3", name="Rare Song", artist="Nobody", duration_ms=150000)],
        total_tracks=3,
    )


class TestTransferReport:
    """Tests for transfer reports."""

    def setup_method(self):
        self.started_at = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_create_report_totals(self):
        report = create_report("tx1", "spotify", "kkbox", self.started_at, _result())

        assert report.header.transfer_id == "tx1"
        assert report.header.source == "spotify"
        assert report.header.target == "kkbox"
        assert report.header.finished_at >= self.started_at
        assert report.playlist.name == "Road Trip"
        assert report.playlist.target_playlist_id == "new-1"
        assert report.playlist.totals == {"total": 3, "matched": 2, "unmatched": 1}
        assert [t.id for t in report.unmatched] == ["s3"]

    def test_to_json_layout(self):
        data = create_report("tx1", "spotify", "kkbox", self.started_at, _result()).to_json()

        assert data["header"]["transferId"] == "tx1"
        assert data["header"]["startedAt"] == "2026-01-02T03:04:05+00:00"
        assert data["playlist"]["sourcePlaylistId"] == "pl-1"
        assert data["unmatched"][0]["durationMs"] == 150000

    def test_write_report(self, tmp_path):
        report = create_report("tx1", "spotify", "kkbox", self.started_at, _result())

        path = write_report(report, str(tmp_path / "reports"))

        assert os.path.basename(path) == "transfer_report_tx1.json"
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        assert data == report.to_json()
        assert data["playlist"]["totals"]["matched"] == 2

    def test_header_without_finish(self):
        header = ReportHeader(transfer_id="x", started_at=self.started_at)

        assert header.to_json()["finishedAt"] is None
        assert header.to_json()["source"] == ""
