"""Tests for the concurrent downloader"""

import pytest

from api.exceptions import StorageError
from api.models import AudioFormat
from catalog.library_db import LibraryCatalog
from download.concurrent_downloader import ConcurrentDownloader
from progress.progress_tracker import ProgressTracker

from .conftest import MEDIA_HOST, FakeTransport, make_item, transport_failure


def media_url(item_id, ext="mp3"):
    return f"https://{MEDIA_HOST}/{item_id}.{ext}"


class FailingCatalog:
    def upsert(self, item):
        raise StorageError("database is locked")


@pytest.fixture
def downloads(temp_dir):
    path = temp_dir / "downloads"
    path.mkdir()
    return path


@pytest.fixture
def catalog(temp_dir):
    db = LibraryCatalog(temp_dir / "library.db")
    yield db
    db.close()


def make_downloader(settings, transport, **kwargs):
    kwargs.setdefault("tracker", ProgressTracker())
    return ConcurrentDownloader(settings, transport, "secret-token", "alice", **kwargs)


class TestConcurrentDownloader:
    """Per-item outcomes"""

    @pytest.mark.asyncio
    async def test_downloads_and_records(self, settings, downloads, catalog):
        transport = FakeTransport()
        known_ids = set()
        downloader = make_downloader(settings, transport, catalog=catalog, known_ids=known_ids)

        await downloader.run([make_item("a1", title="My Song")], downloads)

        path = downloads / "My Song - a1.mp3"
        assert path.read_bytes() == f"audio:{media_url('a1')}".encode()
        assert downloader.tracker.progress.downloaded == 1
        assert downloader.tracker.progress.bytes_downloaded == len(path.read_bytes())
        assert known_ids == {"a1"}
        stored = catalog.all()[0]
        assert stored.id == "a1"
        assert stored.downloaded_at is not None
        assert transport.headers[0]["Authorization"] == "Bearer secret-token"

    @pytest.mark.asyncio
    async def test_both_formats(self, settings, downloads):
        transport = FakeTransport()
        downloader = make_downloader(settings, transport, audio_format=AudioFormat.BOTH)

        await downloader.run([make_item("a1", title="Song")], downloads)

        assert (downloads / "Song - a1.mp3").exists()
        assert (downloads / "Song - a1.wav").exists()
        assert transport.media_calls == [media_url("a1"), media_url("a1", "wav")]

    @pytest.mark.asyncio
    async def test_rate_limit_before_each_format(self, settings, downloads, monkeypatch):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        monkeypatch.setattr("download.concurrent_downloader.asyncio.sleep", fake_sleep)
        transport = FakeTransport()
        downloader = make_downloader(
            settings, transport, audio_format=AudioFormat.BOTH, rate_limit_ms=250
        )

        await downloader.run([make_item("a1", title="Song")], downloads)

        assert sleeps == [0.25, 0.25]
        assert len(transport.media_calls) == 2

    @pytest.mark.asyncio
    async def test_zero_rate_limit_never_sleeps(self, settings, downloads, monkeypatch):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        monkeypatch.setattr("download.concurrent_downloader.asyncio.sleep", fake_sleep)
        downloader = make_downloader(settings, FakeTransport(), rate_limit_ms=0)

        await downloader.run([make_item("a1"), make_item("a2")], downloads)

        assert sleeps == []

    @pytest.mark.asyncio
    async def test_wav_refused_is_partial_success(self, settings, downloads, catalog):
        transport = FakeTransport(media={media_url("a1", "wav"): 403})
        downloader = make_downloader(
            settings, transport, catalog=catalog, audio_format=AudioFormat.BOTH
        )

        await downloader.run([make_item("a1", title="Song")], downloads)

        tracker = downloader.tracker
        assert tracker.progress.downloaded == 1
        assert tracker.progress.failed == 0
        assert tracker.get_errors() == []
        warnings = tracker.get_warnings()
        assert len(warnings) == 1
        assert warnings[0].message == "WAV not available (HTTP 403)"
        assert (downloads / "Song - a1.mp3").exists()
        assert not (downloads / "Song - a1.wav").exists()
        assert catalog.exists("a1")

    @pytest.mark.asyncio
    async def test_all_formats_failed_records_one_error(self, settings, downloads, catalog):
        transport = FakeTransport(media={
            media_url("a1"): 404,
            media_url("a1", "wav"): transport_failure(media_url("a1", "wav")),
        })
        known_ids = set()
        downloader = make_downloader(
            settings, transport, catalog=catalog, known_ids=known_ids, audio_format=AudioFormat.BOTH
        )

        await downloader.run([make_item("a1")], downloads)

        errors = downloader.tracker.get_errors()
        assert downloader.tracker.progress.failed == 1
        assert len(errors) == 1
        assert errors[0].item_id == "a1"
        assert "MP3 not available (HTTP 404)" in errors[0].message
        assert "wav: Network error" in errors[0].message
        assert not catalog.exists("a1")
        assert known_ids == set()

    @pytest.mark.asyncio
    async def test_server_error_fails_item(self, settings, downloads):
        transport = FakeTransport(media={media_url("a1"): 502})
        downloader = make_downloader(settings, transport)

        await downloader.run([make_item("a1")], downloads)

        errors = downloader.tracker.get_errors()
        assert errors[0].message == "mp3: HTTP 502 for mp3"
        assert list(downloads.iterdir()) == []

    @pytest.mark.asyncio
    async def test_item_without_audio_is_skipped(self, settings, downloads, catalog):
        transport = FakeTransport()
        downloader = make_downloader(settings, transport, catalog=catalog)

        await downloader.run([make_item("a1", audio=False)], downloads)

        assert downloader.tracker.progress.skipped == 1
        assert transport.calls == []
        assert not catalog.exists("a1")

    @pytest.mark.asyncio
    async def test_verify_files_skips_existing(self, settings, downloads, catalog):
        (downloads / "Song - a1.mp3").write_bytes(b"already here")
        transport = FakeTransport()
        known_ids = set()
        downloader = make_downloader(
            settings, transport, catalog=catalog, known_ids=known_ids, verify_files=True
        )

        await downloader.run([make_item("a1", title="Song")], downloads)

        assert transport.calls == []
        assert downloader.tracker.progress.skipped == 1
        assert catalog.exists("a1")
        assert known_ids == {"a1"}
        assert (downloads / "Song - a1.mp3").read_bytes() == b"already here"

    @pytest.mark.asyncio
    async def test_verify_files_needs_every_format(self, settings, downloads):
        (downloads / "Song - a1.mp3").write_bytes(b"mp3 only")
        transport = FakeTransport()
        downloader = make_downloader(
            settings, transport, audio_format=AudioFormat.BOTH, verify_files=True
        )

        await downloader.run([make_item("a1", title="Song")], downloads)

        assert len(transport.media_calls) == 2
        assert downloader.tracker.progress.downloaded == 1

    @pytest.mark.asyncio
    async def test_same_title_different_ids_do_not_collide(self, settings, downloads):
        downloader = make_downloader(settings, FakeTransport())

        await downloader.run([make_item("a1", title="Same"), make_item("a2", title="Same")], downloads)

        assert sorted(path.name for path in downloads.iterdir()) == ["Same - a1.mp3", "Same - a2.mp3"]

    @pytest.mark.asyncio
    async def test_unsafe_title_is_sanitized(self, settings, downloads):
        downloader = make_downloader(settings, FakeTransport())

        await downloader.run([make_item("a1", title='AC/DC: "Live"?')], downloads)

        assert (downloads / "AC-DC- -Live-- - a1.mp3").exists()

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, settings, downloads):
        settings.concurrent_downloads = 3
        transport = FakeTransport(delay=0.01)
        items = [make_item(f"id{i}") for i in range(12)]
        downloader = make_downloader(settings, transport)

        await downloader.run(items, downloads)

        assert 1 < transport.max_in_flight <= 3
        assert sorted(transport.media_calls) == sorted(media_url(f"id{i}") for i in range(12))
        assert downloader.tracker.progress.downloaded == 12

    @pytest.mark.asyncio
    async def test_catalog_failure_keeps_file(self, settings, downloads):
        known_ids = set()
        downloader = make_downloader(
            settings, FakeTransport(), catalog=FailingCatalog(), known_ids=known_ids
        )

        await downloader.run([make_item("a1", title="Song")], downloads)

        assert (downloads / "Song - a1.mp3").exists()
        assert downloader.tracker.progress.downloaded == 1
        assert known_ids == set()

    @pytest.mark.asyncio
    async def test_progress_callback_after_each_item(self, settings, downloads):
        snapshots = []
        downloader = make_downloader(settings, FakeTransport(), progress_callback=snapshots.append)

        await downloader.run([make_item("a1"), make_item("a2")], downloads)

        assert len(snapshots) == 2
        assert snapshots[-1]["downloaded"] == 2
        assert snapshots[-1]["total"] == 2
        assert [snapshot["completion_percentage"] for snapshot in snapshots] == [50.0, 100.0]

    @pytest.mark.asyncio
    async def test_leftover_partial_files_removed(self, settings, downloads):
        (downloads / "Old - x.mp3.part").write_bytes(b"half")
        downloader = make_downloader(settings, FakeTransport())

        await downloader.run([make_item("a1")], downloads)

        assert not (downloads / "Old - x.mp3.part").exists()

    @pytest.mark.asyncio
    async def test_empty_batch_does_nothing(self, settings, downloads):
        transport = FakeTransport()
        downloader = make_downloader(settings, transport)

        await downloader.run([], downloads)

        assert transport.calls == []
