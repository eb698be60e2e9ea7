"""
Unit tests for per-source request pacing.
"""

import random
import threading

import pytest

from src.config.models import PacingConfig
from src.config.validation import ConfigurationError
from src.scraper.errors import RateLimitExceeded
from src.scraper.pacing import PacingController, WINDOW_MS


class FakeClock:
    """Millisecond clock advanced only by the recorded sleeps."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds * 1000.0

    def advance(self, ms: float) -> None:
        self.now += ms


def make_controller(clock, **pacing_kwargs):
    pacing = PacingConfig(**{
        "min_delay_ms": 0,
        "max_delay_ms": 0,
        "max_requests_per_minute": 30,
        "max_concurrent_requests": 3,
        **pacing_kwargs
    })
    controller = PacingController(clock=clock, sleep=clock.sleep, rng=random.Random(42))
    controller.register_pacing("test-source", pacing)
    return controller


class TestDelayDraw:
    """Test cases for the randomized spacing delay."""

    @pytest.mark.parametrize("min_delay,max_delay", [(0, 0), (2000, 5000), (3000, 3001), (1500, 1500)])
    def test_draw_stays_within_bounds(self, min_delay, max_delay):
        """Every draw lies in [min, max] inclusive."""
        controller = PacingController(rng=random.Random(7))
        pacing = PacingConfig(min_delay_ms=min_delay, max_delay_ms=max_delay)

        draws = [controller.draw_delay_ms(pacing) for _ in range(500)]

        assert all(min_delay <= draw <= max_delay for draw in draws)
        assert all(isinstance(draw, int) for draw in draws)

    def test_draw_reaches_both_ends(self):
        """Both bounds are reachable, so the range is inclusive."""
        controller = PacingController(rng=random.Random(1))
        pacing = PacingConfig(min_delay_ms=10, max_delay_ms=12)

        draws = {controller.draw_delay_ms(pacing) for _ in range(300)}

        assert draws == {10, 11, 12}


class TestPacingController:
    """Test cases for PacingController admission."""

    def test_first_admission_does_not_wait(self):
        """The first request of a source is issued immediately."""
        clock = FakeClock()
        controller = make_controller(clock, min_delay_ms=2000, max_delay_ms=2000)

        controller.admit("test-source")

        assert clock.sleeps == []
        state = controller.get_state("test-source")
        assert state.request_count == 1
        assert state.last_request_at == clock.now
        assert state.in_flight == 1

    def test_consecutive_admissions_are_spaced(self):
        """The second request waits out the drawn delay since the last one."""
        clock = FakeClock()
        controller = make_controller(clock, min_delay_ms=2000, max_delay_ms=2000)

        with controller.slot("test-source"):
            pass
        clock.advance(500)
        with controller.slot("test-source"):
            pass

        assert clock.sleeps == [pytest.approx(1.5)]

    def test_no_wait_when_delay_already_elapsed(self):
        """No sleep happens if enough time passed since the last request."""
        clock = FakeClock()
        controller = make_controller(clock, min_delay_ms=2000, max_delay_ms=5000)

        with controller.slot("test-source"):
            pass
        clock.advance(5000)
        with controller.slot("test-source"):
            pass

        assert clock.sleeps == []

    def test_third_admission_in_window_is_rejected(self):
        """With a budget of 2 per minute the third admission fails fast."""
        clock = FakeClock()
        controller = make_controller(clock, max_requests_per_minute=2)

        for _ in range(2):
            with controller.slot("test-source"):
                clock.advance(1000)

        with pytest.raises(RateLimitExceeded) as exc_info:
            controller.admit("test-source")

        assert exc_info.value.source_id == "test-source"
        assert exc_info.value.retry_after_ms == WINDOW_MS - 2000
        assert controller.get_state("test-source").in_flight == 0

    def test_admission_succeeds_after_window_rolls_over(self):
        """Once the window has passed, admission is possible again."""
        clock = FakeClock()
        controller = make_controller(clock, max_requests_per_minute=2)

        for _ in range(2):
            with controller.slot("test-source"):
                pass
        with pytest.raises(RateLimitExceeded):
            controller.admit("test-source")

        clock.advance(WINDOW_MS)
        controller.admit("test-source")

        assert controller.get_state("test-source").request_count == 1

    def test_trailing_window_never_exceeds_budget(self):
        """No 60 second span ever holds more admissions than the budget."""
        clock = FakeClock()
        controller = make_controller(clock, max_requests_per_minute=5)
        admitted = []

        for _ in range(400):
            try:
                with controller.slot("test-source"):
                    admitted.append(clock.now)
            except RateLimitExceeded:
                pass
            clock.advance(1700)

        assert len(admitted) > 5
        for i, start in enumerate(admitted):
            in_window = [t for t in admitted[i:] if t - start < WINDOW_MS]
            assert len(in_window) <= 5

    def test_rejected_admission_releases_its_slot(self):
        """A rate-limited admission does not leak a concurrency slot."""
        clock = FakeClock()
        controller = make_controller(clock, max_requests_per_minute=1, max_concurrent_requests=1)

        with controller.slot("test-source"):
            pass
        for _ in range(3):
            with pytest.raises(RateLimitExceeded):
                controller.admit("test-source")

        clock.advance(WINDOW_MS)
        with controller.slot("test-source"):
            pass

    def test_concurrency_ceiling_blocks_until_release(self):
        """A third admission waits while two requests are in flight."""
        clock = FakeClock()
        controller = make_controller(clock, max_concurrent_requests=2)

        controller.admit("test-source")
        controller.admit("test-source")

        admitted = threading.Event()

        def third():
            controller.admit("test-source")
            admitted.set()

        worker = threading.Thread(target=third)
        worker.start()

        assert not admitted.wait(0.2)
        controller.release("test-source")
        assert admitted.wait(2.0)
        worker.join(2.0)

        assert controller.get_state("test-source").in_flight == 2

    def test_release_without_admit_raises(self):
        """Releasing more than was admitted is a programming error."""
        controller = make_controller(FakeClock())

        with pytest.raises(RuntimeError):
            controller.release("test-source")

    def test_unknown_source_is_configuration_error(self):
        """Admitting a source that was never registered is rejected."""
        controller = PacingController()

        with pytest.raises(ConfigurationError):
            controller.admit("missing-source")

    def test_sources_are_paced_independently(self):
        """Spacing applies per source, not across sources."""
        clock = FakeClock()
        controller = make_controller(clock, min_delay_ms=3000, max_delay_ms=3000)
        controller.register_pacing("other-source", PacingConfig(min_delay_ms=3000, max_delay_ms=3000))

        with controller.slot("test-source"):
            pass
        with controller.slot("other-source"):
            pass

        assert clock.sleeps == []

    def test_register_keeps_existing_state(self):
        """Registering a source twice does not reset its counters."""
        clock = FakeClock()
        controller = make_controller(clock)

        with controller.slot("test-source"):
            pass
        controller.register_pacing("test-source", PacingConfig())

        assert controller.get_state("test-source").request_count == 1

    def test_release_does_not_wait_for_a_sleeping_admission(self):
        """A finishing request releases while another admission sleeps out its delay."""
        sleeping = threading.Event()
        wake = threading.Event()

        def blocking_sleep(seconds):
            sleeping.set()
            wake.wait(5.0)

        clock = FakeClock()
        controller = PacingController(clock=clock, sleep=blocking_sleep, rng=random.Random(1))
        controller.register_pacing("test-source", PacingConfig(
            min_delay_ms=2000, max_delay_ms=2000, max_requests_per_minute=30, max_concurrent_requests=2
        ))
        controller.admit("test-source")

        worker = threading.Thread(target=controller.admit, args=("test-source",))
        worker.start()
        assert sleeping.wait(2.0)

        released = threading.Event()
        releaser = threading.Thread(target=lambda: (controller.release("test-source"), released.set()))
        releaser.start()
        try:
            assert released.wait(1.0)
            state = controller.get_state("test-source")
            assert state.in_flight == 1
            assert state.last_request_at == clock.now + 2000
        finally:
            wake.set()
            worker.join(2.0)
            releaser.join(2.0)

    def test_failed_sleep_gives_back_the_reservation(self):
        """An interrupted pacing wait frees the slot it reserved."""
        def failing_sleep(seconds):
            raise RuntimeError("interrupted")

        clock = FakeClock()
        controller = PacingController(clock=clock, sleep=failing_sleep, rng=random.Random(1))
        controller.register_pacing("test-source", PacingConfig(
            min_delay_ms=1000, max_delay_ms=1000, max_concurrent_requests=1
        ))
        controller.admit("test-source")
        controller.release("test-source")

        with pytest.raises(RuntimeError, match="interrupted"):
            controller.admit("test-source")

        assert controller.get_state("test-source").in_flight == 0

    def test_racing_admissions_respect_the_budget(self):
        """Many threads admitting at once never overrun the per-minute budget."""
        clock = FakeClock()
        controller = make_controller(clock, max_requests_per_minute=5, max_concurrent_requests=40)
        barrier = threading.Barrier(40)
        outcomes = []
        outcomes_lock = threading.Lock()

        def contender():
            barrier.wait()
            try:
                controller.admit("test-source")
                outcome = "admitted"
            except RateLimitExceeded:
                outcome = "rejected"
            with outcomes_lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=contender) for _ in range(40)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(5.0)

        assert outcomes.count("admitted") == 5
        assert outcomes.count("rejected") == 35
        state = controller.get_state("test-source")
        assert state.request_count == 5
        assert state.in_flight == 5
