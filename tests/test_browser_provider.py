from ghostsurfer.browser_provider import capture
from ghostsurfer.timing import TimingReconciler

from conftest import FakeClock


class StubRequest:
    """Just the attributes of a playwright Request that capture() reads."""

    def __init__(self, url="https://cdn.example/app.js", resource_type="script", timing=None):
        self.url = url
        self.resource_type = resource_type
        self.timing = timing


def test_response_end_is_relative_to_start_time():
    request = StubRequest(timing={"startTime": 1000, "responseEnd": 250})

    captured = capture(request)

    assert captured.key is request
    assert captured.start_ms == 1000
    assert captured.end_ms == 1250
    record = TimingReconciler(clock=FakeClock(5000)).settle(captured)
    assert record.duration == 250
    assert record.resource_type == "script"
    assert record.url == "https://cdn.example/app.js"


def test_missing_response_end_leaves_timing_unset():
    captured = capture(StubRequest(timing={"startTime": 1000, "responseEnd": -1}))

    assert captured.start_ms is None
    assert captured.end_ms is None


def test_failed_request_falls_back_to_observed_time():
    clock = FakeClock(100)
    reconciler = TimingReconciler(clock=clock)
    request = StubRequest(timing={"startTime": -1, "responseEnd": -1})

    reconciler.observe(capture(request, with_timing=False))
    clock.advance(40)
    record = reconciler.settle(capture(request))

    assert record.duration == 40


def test_observed_events_carry_no_timing():
    captured = capture(StubRequest(timing={"startTime": 1000, "responseEnd": 250}), with_timing=False)

    assert captured.start_ms is None
    assert captured.end_ms is None


def test_request_without_timing_dict():
    captured = capture(StubRequest(timing=None))

    assert (captured.start_ms, captured.end_ms) == (None, None)
