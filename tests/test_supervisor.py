"""Tests for watchfile.reactive.supervisor — the per-connection watch loop.

The watchfiles subscription is replaced by ScriptedDetector, so each test
decides exactly which raw notifications arrive and when; significance
filtering, reading, rendering and delivery are the real thing.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from watchfile._errors import NotificationSourceError, RenderError
from watchfile.content.renderer import ContentRenderer
from watchfile.observability import ChangeSkipped, EventLog, SourceError, WatchCollector
from watchfile.observability.events import PayloadPushed, PushProfile, WatchStarted, WatchStopped
from watchfile.reactive.session import PushSession
from watchfile.reactive.supervisor import WatchSupervisor

from tests.conftest import DetectorFactory, MtimeClock, collect_frames, wait_until


class _Harness:
    """A running supervisor plus a transport collecting its payloads."""

    def __init__(
        self,
        path: Path,
        detectors: DetectorFactory,
        *,
        renderer: object | None = None,
    ) -> None:
        self.session = PushSession("test-client")
        self.collector = WatchCollector(EventLog(), echo=False)
        self.supervisor = WatchSupervisor(
            path,
            self.session,
            renderer=renderer,  # type: ignore[arg-type]
            detector_factory=detectors,
            collector=self.collector,
        )
        self.detectors = detectors
        self.payloads: list[str] = []
        self.run_task: asyncio.Task[None] | None = None
        self.consumer: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self.consumer = asyncio.create_task(collect_frames(self.session, self.payloads))
        self.run_task = asyncio.create_task(self.supervisor.run())
        await wait_until(lambda: self.supervisor.state == "watching")

    @property
    def detector(self):  # noqa: ANN201
        return self.detectors.last

    async def drain(self) -> list[str]:
        """Let the loop process everything queued so far, then stop it."""
        self.detector.finish()
        assert self.run_task is not None and self.consumer is not None
        await asyncio.wait_for(self.run_task, 5)
        await asyncio.wait_for(self.consumer, 5)
        return self.payloads

    def events(self, event_type: type) -> list:
        return self.collector.log.query(event_type=event_type)


class _FailingRenderer:
    """Renderer that rejects one specific source text."""

    def __init__(self, bad: str) -> None:
        self._bad = bad
        self._inner = ContentRenderer()

    def render(self, text: str) -> str:
        if text == self._bad:
            msg = "parser fault"
            raise RenderError(msg)
        return self._inner.render(text)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    """State transitions and resource cleanup."""

    def test_initial_state(self, md_file: Path, detectors: DetectorFactory) -> None:
        supervisor = WatchSupervisor(md_file, PushSession(), detector_factory=detectors)
        assert supervisor.state == "initializing"
        assert supervisor.target is None
        assert supervisor.stop_reason is None

    @pytest.mark.asyncio
    async def test_baseline_captured_from_existing_file(
        self, md_file: Path, detectors: DetectorFactory
    ) -> None:
        h = _Harness(md_file, detectors)
        await h.start()

        assert h.supervisor.target is not None
        assert h.supervisor.target.watermark == md_file.stat().st_mtime_ns
        assert h.detector.started
        started = h.events(WatchStarted)
        assert started and started[0].target_exists

        await h.drain()

    @pytest.mark.asyncio
    async def test_cancellation_releases_detector(
        self, md_file: Path, detectors: DetectorFactory
    ) -> None:
        h = _Harness(md_file, detectors)
        await h.start()
        assert h.run_task is not None

        h.run_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await h.run_task

        assert h.detector.closed
        assert h.supervisor.state == "terminated"
        assert h.supervisor.stop_reason == "cancelled"
        assert h.session.closed

    @pytest.mark.asyncio
    async def test_peer_disconnect_ends_loop(
        self, md_file: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        """A closed session ends the loop on the next send attempt."""
        h = _Harness(md_file, detectors)
        await h.start()
        assert h.consumer is not None and h.run_task is not None

        h.consumer.cancel()
        await wait_until(lambda: h.session.closed)

        clock.write(md_file, "# After disconnect\n")
        h.detector.touch()
        await asyncio.wait_for(h.run_task, 5)

        assert h.supervisor.state == "terminated"
        assert h.supervisor.stop_reason == "peer_closed"
        assert h.detector.closed
        stopped = h.events(WatchStopped)
        assert stopped[0].reason == "peer_closed"
        assert stopped[0].payloads_sent == 0

    @pytest.mark.asyncio
    async def test_source_failure_ends_loop_without_raising(
        self, md_file: Path, detectors: DetectorFactory
    ) -> None:
        h = _Harness(md_file, detectors)
        await h.start()
        assert h.run_task is not None

        h.detector.abort(NotificationSourceError("watch backend gone"))
        await asyncio.wait_for(h.run_task, 5)

        assert h.supervisor.stop_reason == "source_failed"
        assert h.session.closed
        assert h.detector.closed
        errors = h.events(SourceError)
        assert errors and errors[0].fatal

    @pytest.mark.asyncio
    async def test_error_events_are_recorded_and_loop_continues(
        self, md_file: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        h = _Harness(md_file, detectors)
        await h.start()

        h.detector.fail(OSError("inotify queue overflow"))
        clock.write(md_file, "# Still here\n")
        h.detector.touch()
        payloads = await h.drain()

        assert len(payloads) == 1
        assert "Still here" in payloads[0]
        errors = h.events(SourceError)
        assert len(errors) == 1
        assert not errors[0].fatal
        assert "overflow" in errors[0].error


# ---------------------------------------------------------------------------
# Change handling
# ---------------------------------------------------------------------------


class TestChangeHandling:
    """Which changes produce payloads."""

    @pytest.mark.asyncio
    async def test_modification_is_pushed(
        self, md_file: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        h = _Harness(md_file, detectors)
        await h.start()

        mtime = clock.write(md_file, "# Updated\n\nBody text.\n")
        h.detector.touch()
        payloads = await h.drain()

        assert len(payloads) == 1
        assert "<h1" in payloads[0]
        assert "Updated" in payloads[0]
        assert "Body text." in payloads[0]
        assert h.supervisor.target is not None
        assert h.supervisor.target.watermark == mtime
        pushed = h.events(PayloadPushed)
        assert pushed[0].mtime_ns == mtime
        assert pushed[0].client_id == "test-client"

    @pytest.mark.asyncio
    async def test_no_push_without_mtime_advance(
        self, md_file: Path, detectors: DetectorFactory
    ) -> None:
        h = _Harness(md_file, detectors)
        await h.start()

        for _ in range(10):
            h.detector.touch()
        payloads = await h.drain()

        assert payloads == []
        assert h.events(ChangeSkipped) == []

    @pytest.mark.asyncio
    async def test_rapid_edits_coalesce(
        self, md_file: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        """N edits before the loop catches up yield between 1 and N payloads, newest last."""
        h = _Harness(md_file, detectors)
        await h.start()

        for n in range(1, 4):
            clock.write(md_file, f"# Version {n}\n")
            h.detector.touch()
        payloads = await h.drain()

        assert 1 <= len(payloads) <= 3
        assert "Version 3" in payloads[-1]

    @pytest.mark.asyncio
    async def test_empty_content_is_not_pushed(
        self, md_file: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        h = _Harness(md_file, detectors)
        await h.start()

        clock.write(md_file, "")
        h.detector.touch()
        await wait_until(lambda: len(h.events(ChangeSkipped)) == 1)
        clock.write(md_file, "# Saved\n")
        h.detector.touch()
        payloads = await h.drain()

        assert len(payloads) == 1
        assert "Saved" in payloads[0]
        skipped = h.events(ChangeSkipped)
        assert [s.reason for s in skipped] == ["empty"]

    @pytest.mark.asyncio
    async def test_identical_rewrite_is_pushed(
        self, tmp_path: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        """Detection is timestamp-based: same bytes with a newer mtime still push."""
        path = tmp_path / "a.md"
        clock.write(path, "a")
        h = _Harness(path, detectors)
        await h.start()

        clock.write(path, "a")
        h.detector.touch()
        payloads = await h.drain()

        assert len(payloads) == 1
        assert "<p>a</p>" in payloads[0]

    @pytest.mark.asyncio
    async def test_absent_file_then_created(
        self, tmp_path: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        path = tmp_path / "later.md"
        h = _Harness(path, detectors)
        await h.start()

        assert h.supervisor.target is not None
        assert h.supervisor.target.watermark is None
        assert not h.events(WatchStarted)[0].target_exists

        h.detector.touch()  # nothing there yet
        clock.write(path, "# Hi")
        h.detector.touch()
        payloads = await h.drain()

        assert len(payloads) == 1
        assert "<h1" in payloads[0]
        assert "Hi" in payloads[0]

    @pytest.mark.asyncio
    async def test_delete_and_recreate(
        self, md_file: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        h = _Harness(md_file, detectors)
        await h.start()

        md_file.unlink()
        h.detector.touch()
        h.detector.touch()
        await wait_until(h.detector.script.empty)
        clock.write(md_file, "# Back again\n")
        h.detector.touch()
        payloads = await h.drain()

        assert len(payloads) == 1
        assert "Back again" in payloads[0]

    @pytest.mark.asyncio
    async def test_freshness_is_monotonic(
        self, md_file: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        h = _Harness(md_file, detectors)
        await h.start()

        for n in range(1, 6):
            clock.write(md_file, f"# Rev {n}\n")
            h.detector.touch()
            h.detector.touch()
            await wait_until(lambda n=n: len(h.payloads) == n)
        payloads = await h.drain()

        revs = [int(p.split("Rev ")[1].split("<")[0]) for p in payloads]
        assert revs == [1, 2, 3, 4, 5]


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestFailureHandling:
    """Transient read failures and render failures."""

    @pytest.mark.asyncio
    async def test_read_failure_keeps_watermark_and_retries(
        self, md_file: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        real_read_text = Path.read_text
        calls = {"n": 0}

        def flaky_read_text(self: Path, *args: object, **kwargs: object) -> str:
            calls["n"] += 1
            if calls["n"] == 1:
                msg = "file is being written"
                raise PermissionError(msg)
            return real_read_text(self, *args, **kwargs)  # type: ignore[arg-type]

        h = _Harness(md_file, detectors)
        await h.start()
        assert h.supervisor.target is not None
        baseline = h.supervisor.target.watermark

        mtime = clock.write(md_file, "# Eventually\n")
        with patch.object(Path, "read_text", autospec=True, side_effect=flaky_read_text):
            h.detector.touch()
            await wait_until(lambda: len(h.events(ChangeSkipped)) == 1)
            assert h.supervisor.target.watermark == baseline

            # Same mtime, new notification: the read is retried.
            h.detector.touch()
            payloads = await h.drain()

        assert len(payloads) == 1
        assert "Eventually" in payloads[0]
        assert h.supervisor.target.watermark == mtime
        assert h.events(ChangeSkipped)[0].reason == "read_failed"

    @pytest.mark.asyncio
    async def test_render_failure_drops_payload_and_continues(
        self, md_file: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        h = _Harness(md_file, detectors, renderer=_FailingRenderer("# broken\n"))
        await h.start()

        clock.write(md_file, "# broken\n")
        h.detector.touch()
        await wait_until(lambda: len(h.events(ChangeSkipped)) == 1)
        h.detector.touch()
        clock.write(md_file, "# fixed\n")
        h.detector.touch()
        payloads = await h.drain()

        assert len(payloads) == 1
        assert "fixed" in payloads[0]
        skipped = h.events(ChangeSkipped)
        assert [s.reason for s in skipped] == ["render_failed"]
        assert "parser fault" in skipped[0].detail


class TestProfiling:
    """A collector turns on per-push profiling."""

    @pytest.mark.asyncio
    async def test_push_emits_profile(
        self, md_file: Path, detectors: DetectorFactory, clock: MtimeClock
    ) -> None:
        h = _Harness(md_file, detectors)
        await h.start()

        clock.write(md_file, "# Timed\n")
        h.detector.touch()
        await h.drain()

        profiles = h.events(PushProfile)
        assert len(profiles) == 1
        assert profiles[0].trigger_path == str(md_file.resolve())
        assert profiles[0].total_ms >= 0


class TestMissingDirectory:
    """The watched file's directory may not exist yet."""

    @pytest.mark.asyncio
    async def test_idles_until_directory_and_file_appear(
        self, tmp_path: Path, clock: MtimeClock
    ) -> None:
        path = tmp_path / "later" / "notes.md"
        session = PushSession("late-dir")
        supervisor = WatchSupervisor(path, session, poll_interval_ms=50)
        payloads: list[str] = []
        consumer = asyncio.create_task(collect_frames(session, payloads))
        run_task = asyncio.create_task(supervisor.run())

        await wait_until(lambda: supervisor.state == "watching")
        await asyncio.sleep(0.5)
        assert supervisor.stop_reason is None

        path.parent.mkdir()
        clock.write(path, "# Hi")
        await wait_until(lambda: len(payloads) == 1, timeout=10)
        assert "Hi" in payloads[0]

        run_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run_task
        await asyncio.wait_for(consumer, 2)
