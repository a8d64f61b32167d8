from __future__ import annotations

from gesture import RecordingGestureController
from models import GestureState, RecordingSource


class FakeTimer:
    def __init__(self, interval: float, callback) -> None:  # noqa: ANN001
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback()


class Recorder:
    def __init__(self, start_result: object = True, start_error: Exception | None = None) -> None:
        self.start_result = start_result
        self.start_error = start_error
        self.starts: list[RecordingSource] = []
        self.stops = 0
        self.inserted: list[str] = []

    def start(self, source: RecordingSource) -> object:
        self.starts.append(source)
        if self.start_error is not None:
            raise self.start_error
        return self.start_result

    def stop(self) -> None:
        self.stops += 1

    def insert(self, text: str) -> None:
        self.inserted.append(text)


def _make(recorder: Recorder, timers: list[FakeTimer]) -> RecordingGestureController:
    def timer_factory(interval, callback):  # noqa: ANN001
        timer = FakeTimer(interval, callback)
        timers.append(timer)
        return timer

    return RecordingGestureController(
        start_recording=recorder.start,
        stop_recording=recorder.stop,
        insert_text=recorder.insert,
        threshold_s=0.2,
        timer_factory=timer_factory,
    )


def test_tap_inserts_space_and_never_records() -> None:
    recorder = Recorder()
    timers: list[FakeTimer] = []
    gesture = _make(recorder, timers)

    gesture.on_key_down()
    assert gesture.state == GestureState.ARMED
    assert timers[0].started
    assert timers[0].interval == 0.2

    gesture.on_key_up()

    assert gesture.state == GestureState.IDLE
    assert timers[0].cancelled
    assert recorder.inserted == [" "]
    assert recorder.starts == []
    assert recorder.stops == 0


def test_stale_timer_after_tap_does_not_start() -> None:
    recorder = Recorder()
    timers: list[FakeTimer] = []
    gesture = _make(recorder, timers)

    gesture.on_key_down()
    gesture.on_key_up()
    timers[0].fire()

    assert recorder.starts == []
    assert gesture.state == GestureState.IDLE


def test_hold_starts_once_and_release_stops_once() -> None:
    recorder = Recorder()
    timers: list[FakeTimer] = []
    gesture = _make(recorder, timers)

    gesture.on_key_down()
    timers[0].fire()
    assert gesture.state == GestureState.RECORDING
    assert gesture.source == RecordingSource.PUSH_TO_TALK

    gesture.on_key_down()  # repeated down while held
    gesture.on_key_up()
    gesture.on_key_up()

    assert recorder.starts == [RecordingSource.PUSH_TO_TALK]
    assert recorder.stops == 1
    assert recorder.inserted == []
    assert gesture.state == GestureState.IDLE
    assert len(timers) == 1


def test_click_toggles_and_ignores_key() -> None:
    recorder = Recorder()
    timers: list[FakeTimer] = []
    gesture = _make(recorder, timers)

    gesture.on_click()
    assert gesture.state == GestureState.RECORDING
    assert gesture.source == RecordingSource.CLICK

    gesture.on_key_down()
    gesture.on_key_up()
    assert gesture.state == GestureState.RECORDING
    assert timers == []
    assert recorder.inserted == []

    gesture.on_click()
    assert gesture.state == GestureState.IDLE
    assert recorder.starts == [RecordingSource.CLICK]
    assert recorder.stops == 1


def test_shortcut_toggles_with_its_own_source() -> None:
    recorder = Recorder()
    gesture = _make(recorder, [])

    gesture.on_shortcut()
    assert gesture.source == RecordingSource.SHORTCUT
    gesture.on_shortcut()

    assert recorder.starts == [RecordingSource.SHORTCUT]
    assert recorder.stops == 1


def test_click_while_armed_cancels_timer_and_starts() -> None:
    recorder = Recorder()
    timers: list[FakeTimer] = []
    gesture = _make(recorder, timers)

    gesture.on_key_down()
    gesture.on_click()
    timers[0].fire()

    assert timers[0].cancelled
    assert recorder.starts == [RecordingSource.CLICK]
    assert gesture.source == RecordingSource.CLICK


def test_start_failure_resets_to_idle() -> None:
    recorder = Recorder(start_error=RuntimeError("mic denied"))
    timers: list[FakeTimer] = []
    gesture = _make(recorder, timers)

    gesture.on_key_down()
    timers[0].fire()
    assert gesture.state == GestureState.IDLE

    gesture.on_key_up()
    assert recorder.stops == 0
    assert recorder.inserted == []


def test_refused_start_resets_to_idle() -> None:
    recorder = Recorder(start_result=None)
    gesture = _make(recorder, [])

    gesture.on_click()

    assert gesture.state == GestureState.IDLE
    assert recorder.starts == [RecordingSource.CLICK]


def test_state_change_callback_reports_transitions() -> None:
    recorder = Recorder()
    timers: list[FakeTimer] = []
    seen: list[tuple[GestureState, RecordingSource | None]] = []
    gesture = _make(recorder, timers)
    gesture._on_state_change = lambda state, source: seen.append((state, source))

    gesture.on_key_down()
    timers[0].fire()
    gesture.on_key_up()

    assert seen == [
        (GestureState.ARMED, None),
        (GestureState.RECORDING, RecordingSource.PUSH_TO_TALK),
        (GestureState.IDLE, None),
    ]


def test_click_during_push_to_talk_stops_it() -> None:
    recorder = Recorder()
    timers: list[FakeTimer] = []
    gesture = _make(recorder, timers)

    gesture.on_key_down()
    timers[0].fire()
    gesture.on_click()
    gesture.on_key_up()

    assert recorder.starts == [RecordingSource.PUSH_TO_TALK]
    assert recorder.stops == 1
    assert recorder.inserted == []
    assert gesture.state == GestureState.IDLE


def test_threshold_reread_on_each_key_press() -> None:
    recorder = Recorder()
    timers: list[FakeTimer] = []
    current = {"threshold": 0.2}

    def timer_factory(interval, callback):  # noqa: ANN001
        timer = FakeTimer(interval, callback)
        timers.append(timer)
        return timer

    gesture = RecordingGestureController(
        start_recording=recorder.start,
        stop_recording=recorder.stop,
        insert_text=recorder.insert,
        timer_factory=timer_factory,
        threshold_provider=lambda: current["threshold"],
    )

    gesture.on_key_down()
    gesture.on_key_up()
    current["threshold"] = 0.5
    gesture.on_key_down()

    assert [t.interval for t in timers] == [0.2, 0.5]


def test_set_threshold_applies_to_next_press() -> None:
    recorder = Recorder()
    timers: list[FakeTimer] = []
    gesture = _make(recorder, timers)

    gesture.set_threshold(0.35)
    gesture.on_key_down()

    assert timers[0].interval == 0.35
