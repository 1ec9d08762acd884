import pytest

from interview_runner import (
    CAMERA_READY, DISCARDED, EXITED, IDLE, RECORDING, SAVED, STOPPED,
    InterviewRunner, RunnerRegistry, download_headers, format_elapsed,
)
from media import ClientMediaDevices, StreamReleasedError, choose_mime_type
from utilities.constants import PREFERRED_MIME_TYPE
from utilities.errors import InvalidStateError, PermissionDeniedError, ValidationError


QUESTIONS = [
    {'id': '1-0', 'entry_id': 1, 'job_title': 'Backend Engineer', 'question': 'What is a race condition?',
     'timestamp': '2024-01-01T00:00:00'},
    {'id': '1-1', 'entry_id': 1, 'job_title': 'Backend Engineer', 'question': 'Explain idempotency.',
     'timestamp': '2024-01-01T00:00:00'},
]


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakePersister:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def persist(self, records, job_title='', title=None):
        self.calls.append({'records': records, 'job_title': job_title, 'title': title})
        if self.error:
            raise self.error
        return type('Saved', (), {'id': 'interview_1'})()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def runner(clock):
    devices = ClientMediaDevices(supported_types=[PREFERRED_MIME_TYPE])
    return InterviewRunner(QUESTIONS, devices, clock=clock, run_id='run-1')


def _record(runner):
    runner.start_camera()
    runner.start_recording()
    return runner


def test_requires_questions():
    with pytest.raises(ValidationError):
        InterviewRunner([], ClientMediaDevices())


def test_permission_denied_stays_idle(runner):
    denied = ClientMediaDevices(granted=False, error='NotAllowedError')

    with pytest.raises(PermissionDeniedError) as excinfo:
        runner.start_camera(denied)

    assert runner.state == IDLE
    assert excinfo.value.to_dict()['reason'] == 'NotAllowedError'
    runner.start_camera(ClientMediaDevices())
    assert runner.state == CAMERA_READY


def test_recording_needs_camera(runner):
    with pytest.raises(InvalidStateError, match='Please start camera first'):
        runner.start_recording()


def test_codec_falls_back_to_default(clock):
    runner = InterviewRunner(QUESTIONS, ClientMediaDevices(supported_types=[]), clock=clock)
    _record(runner)
    assert runner.mime_type is None
    assert choose_mime_type(lambda mime: True) == PREFERRED_MIME_TYPE


def test_elapsed_time_follows_clock(runner, clock):
    _record(runner)
    clock.advance(75.6)
    assert runner.elapsed_seconds == 75
    assert format_elapsed(runner.elapsed_seconds) == '01:15'

    runner.stop()
    clock.advance(30)
    assert runner.elapsed_seconds == 75


def test_transcripts_are_flushed_per_question(runner):
    _record(runner)
    runner.push_transcript('A race condition is', is_final=True)
    runner.push_transcript('ignored interim', is_final=False)
    runner.push_transcript(' when two threads race. ', is_final=True)

    assert runner.next_question() is False
    runner.push_transcript('Same request, same result.')
    assert runner.next_question() is True

    assert runner.state == STOPPED
    records = runner.transcription_records()
    assert [r['question_id'] for r in records] == ['1-0', '1-1']
    assert records[0]['transcript'] == 'A race condition is when two threads race.'
    assert records[1]['transcript'] == 'Same request, same result.'


def test_revisiting_a_question_appends_to_its_record(runner):
    _record(runner)
    runner.push_transcript('First part.')
    runner.next_question()
    assert runner.previous_question() is True
    runner.push_transcript('Second part.')
    runner.stop()

    records = runner.transcription_records()
    assert records[0]['transcript'] == 'First part. Second part.'
    assert records[1]['transcript'] == ''


def test_save_persists_and_releases(runner):
    _record(runner)
    runner.push_chunk(b'abc')
    runner.push_transcript('An answer.')
    runner.push_chunk(b'def')
    runner.stop()
    persister = FakePersister()

    interview_id, recording = runner.save(persister, title='Practice')

    assert interview_id == 'interview_1'
    assert recording == b'abcdef'
    assert persister.calls[0]['job_title'] == 'Backend Engineer'
    assert persister.calls[0]['title'] == 'Practice'
    assert runner.state == SAVED
    assert runner.released


def test_save_without_speech_persists_nothing(runner):
    _record(runner)
    runner.push_chunk(b'video')
    runner.stop()
    persister = FakePersister()

    interview_id, recording = runner.save(persister)

    assert interview_id is None
    assert recording == b'video'
    assert persister.calls == []


def test_failed_save_keeps_dialog_open(runner):
    _record(runner)
    runner.push_transcript('An answer.')
    runner.stop()

    with pytest.raises(RuntimeError):
        runner.save(FakePersister(error=RuntimeError('db down')))

    assert runner.state == STOPPED
    assert not runner.released
    runner.discard()
    assert runner.released


def test_discard_releases_devices_and_stops_delivery(runner):
    _record(runner)
    runner.push_chunk(b'frame')
    runner.push_transcript('Half an answer')
    persister = FakePersister()

    runner.discard()

    assert runner.state == DISCARDED
    assert runner.released
    assert runner.transcription_records() == []
    assert persister.calls == []
    with pytest.raises(StreamReleasedError):
        runner.push_chunk(b'late frame')
    with pytest.raises(StreamReleasedError):
        runner.push_transcript('late words')
    with pytest.raises(InvalidStateError):
        runner.next_question()


def test_finishing_without_recording_exits(runner):
    runner.start_camera()
    runner.next_question()

    assert runner.next_question() is True
    assert runner.state == EXITED
    assert runner.released


def test_context_manager_releases_on_error(clock):
    with pytest.raises(ZeroDivisionError):
        with InterviewRunner(QUESTIONS, ClientMediaDevices(), clock=clock) as runner:
            _record(runner)
            assert runner.state == RECORDING
            1 / 0
    assert runner.released


def test_registry_exits_runners(runner):
    registry = RunnerRegistry()
    registry.add(runner)
    _record(runner)

    assert registry.get('run-1') is runner
    registry.close_all()

    assert len(registry) == 0
    assert runner.state == EXITED
    assert runner.released


def test_registry_releases_idle_runners(clock):
    registry = RunnerRegistry(idle_ttl=600, clock=clock)
    abandoned = _record(registry.add(InterviewRunner(QUESTIONS, ClientMediaDevices(), clock=clock, run_id='run-1')))
    active = registry.add(InterviewRunner(QUESTIONS, ClientMediaDevices(), clock=clock, run_id='run-2'))

    clock.advance(400)
    assert registry.get('run-2') is active
    clock.advance(300)

    assert registry.get('run-1') is None
    assert abandoned.state == EXITED
    assert abandoned.released
    assert registry.get('run-2') is active
    assert len(registry) == 1


def test_registry_without_ttl_keeps_runners(runner, clock):
    registry = RunnerRegistry(idle_ttl=0, clock=clock)
    registry.add(runner)
    clock.advance(10 ** 6)
    assert registry.sweep() == []
    assert registry.get('run-1') is runner


def test_snapshot_and_download_headers(runner):
    snapshot = runner.snapshot()
    assert snapshot['state'] == IDLE
    assert snapshot['current_question']['question'] == 'What is a race condition?'
    assert snapshot['question_count'] == 2
    assert download_headers() == {'filename': 'mock-interview-recording.webm', 'mimetype': 'video/webm'}
