import logging
import time
import uuid
from datetime import datetime

from media import MediaRecorder, SpeechRecognizer, choose_mime_type
from utilities.constants import RECORDING_FILENAME, RECORDING_MIME_TYPE
from utilities.errors import InvalidStateError, PermissionDeniedError, ValidationError
import config

logger = logging.getLogger(__name__)

IDLE = 'idle'
CAMERA_READY = 'camera_ready'
RECORDING = 'recording'
STOPPED = 'stopped'
SAVED = 'saved'
DISCARDED = 'discarded'
EXITED = 'exited'

FINAL_STATES = (SAVED, DISCARDED, EXITED)


class InterviewRunner:
    """One mock interview run over an ordered list of selected questions.

    A single recording spans the whole run. While recording, moving between
    questions flushes the transcript gathered so far into the current
    question's record. The camera stream is owned by the runner and is
    released on save, discard, exit and on leaving a `with` block.
    """

    def __init__(self, questions, devices, clock=time.monotonic, run_id=None):
        if not questions:
            raise ValidationError('No questions selected for mock interview.')
        self.run_id = run_id or uuid.uuid4().hex
        self.questions = [dict(q) for q in questions]
        self.devices = devices
        self.clock = clock
        self.state = IDLE
        self.current_index = 0
        self.completed = False

        self.stream = None
        self.recorder = None
        self.recognizer = None
        self.mime_type = None
        self.started_at = None
        self.stopped_at = None

        self.transcript_buffer = []
        self.records = {}
        self.recording = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

    @property
    def current_question(self):
        return self.questions[self.current_index]

    @property
    def is_last_question(self):
        return self.current_index == len(self.questions) - 1

    @property
    def elapsed_seconds(self):
        if self.started_at is None:
            return 0
        end = self.stopped_at if self.stopped_at is not None else self.clock()
        return max(0, int(end - self.started_at))

    @property
    def released(self):
        return self.stream is None or not self.stream.active

    def _require_active(self):
        if self.state in FINAL_STATES:
            raise InvalidStateError(f'This interview has already ended ({self.state}).')

    # === Devices and recording ===

    def start_camera(self, devices=None):
        self._require_active()
        if self.state != IDLE:
            raise InvalidStateError('The camera is already on.')
        devices = devices or self.devices
        try:
            stream = devices.get_user_media(audio=True, video=True)
        except PermissionDeniedError:
            logger.warning("Camera/microphone permission denied for run %s", self.run_id)
            raise
        self.devices = devices
        self.stream = stream
        self.completed = False
        self.state = CAMERA_READY
        return stream

    def start_recording(self):
        self._require_active()
        if self.state == IDLE:
            raise InvalidStateError('Camera not available. Please start camera first.')
        if self.state != CAMERA_READY or self.completed:
            raise InvalidStateError('Recording cannot be started now.')

        self.mime_type = choose_mime_type(self.devices.is_type_supported)
        self.recorder = MediaRecorder(self.stream, self.mime_type)
        self.recognizer = SpeechRecognizer(self.stream)
        self.recognizer.on_final = self._on_transcript
        self.recorder.start()
        self.recognizer.start()

        self.transcript_buffer = []
        self.records = {}
        self.recording = None
        self.started_at = self.clock()
        self.stopped_at = None
        self.state = RECORDING
        logger.info("Run %s recording started (%s)", self.run_id, self.mime_type or 'default codec')

    def push_chunk(self, data):
        if self.recorder is None:
            raise InvalidStateError('The recorder is not running.')
        self.recorder.push_chunk(data)

    def push_transcript(self, text, is_final=True):
        if self.recognizer is None:
            raise InvalidStateError('Speech recognition is not running.')
        self.recognizer.push_result(text, is_final=is_final)

    def _on_transcript(self, text):
        self.transcript_buffer.append(text)

    def _flush(self):
        """Move buffered speech into the current question's record."""
        text = ' '.join(self.transcript_buffer).strip()
        self.transcript_buffer = []
        question = self.current_question
        record = self.records.get(question['id'])
        if record is None:
            self.records[question['id']] = {
                'question_id': question['id'],
                'question': question['question'],
                'transcript': text,
                'position': self.current_index,
                'timestamp': datetime.utcnow().isoformat(),
            }
        elif text:
            record['transcript'] = f"{record['transcript']} {text}".strip()

    # === Navigation ===

    def next_question(self):
        """Advance; on the last question this finishes the interview."""
        self._require_active()
        if self.state == RECORDING:
            self._flush()
        if not self.is_last_question:
            self.current_index += 1
            return False

        self.completed = True
        if self.state == RECORDING:
            self.stop()
        elif self.state != STOPPED:
            # Nothing was recorded; the run simply ends
            self.exit()
        return True

    def previous_question(self):
        self._require_active()
        if self.current_index == 0:
            return False
        if self.state == RECORDING:
            self._flush()
        self.current_index -= 1
        return True

    def stop(self):
        if self.state != RECORDING:
            raise InvalidStateError('Not recording.')
        self._flush()
        self.recognizer.stop()
        self.recording = self.recorder.stop()
        self.stopped_at = self.clock()
        self.state = STOPPED
        logger.info("Run %s stopped after %ss, %d bytes recorded",
                    self.run_id, self.elapsed_seconds, len(self.recording))
        return self.recording

    # === Completion dialog ===

    def transcription_records(self):
        return sorted((dict(r) for r in self.records.values()), key=lambda r: r['position'])

    def has_transcript_content(self):
        return any(r['transcript'].strip() for r in self.records.values())

    @property
    def job_title(self):
        return self.questions[0].get('job_title', '')

    def save(self, persister, title=None):
        """Persist transcripts, then hand back the recording for download.

        Returns (interview_id or None, recording bytes). A run without any
        transcript text persists nothing. Devices are released once the
        save has gone through; a failed write leaves the dialog open.
        """
        if self.state != STOPPED:
            raise InvalidStateError('Stop the recording before saving.')
        interview_id = None
        if self.has_transcript_content():
            interview = persister.persist(self.transcription_records(), job_title=self.job_title, title=title)
            interview_id = interview.id
        else:
            logger.info("Run %s captured no transcript; nothing persisted", self.run_id)
        recording = self.recording or b''
        self.state = SAVED
        self.release()
        return interview_id, recording

    def discard(self):
        """Drop the recording and transcripts and release the devices."""
        self._require_active()
        self._drop()
        self.state = DISCARDED
        self.release()
        logger.info("Run %s discarded", self.run_id)

    def exit(self):
        """Leave the interview from any state. Always releases the devices."""
        try:
            if self.state not in FINAL_STATES:
                self._drop()
                self.state = EXITED
        finally:
            self.release()

    def _drop(self):
        if self.recorder is not None:
            self.recorder.reset()
        self.transcript_buffer = []
        self.records = {}
        self.recording = None

    def release(self):
        """Stop recognizer, recorder and every device track. Idempotent."""
        try:
            if self.recognizer is not None:
                self.recognizer.stop()
            if self.recorder is not None and self.recorder.state == 'recording':
                self.recorder.stop()
        finally:
            if self.stream is not None:
                self.stream.stop()
                logger.debug("Run %s released camera and microphone", self.run_id)

    def snapshot(self):
        return {
            'run_id': self.run_id,
            'state': self.state,
            'current_index': self.current_index,
            'question_count': len(self.questions),
            'current_question': self.current_question,
            'is_last_question': self.is_last_question,
            'elapsed_seconds': self.elapsed_seconds,
            'completed': self.completed,
            'mime_type': self.mime_type,
            'released': self.released,
            'transcriptions': self.transcription_records(),
        }


def format_elapsed(seconds):
    mins, secs = divmod(int(seconds), 60)
    return f"{mins:02d}:{secs:02d}"


def download_headers():
    return {'filename': RECORDING_FILENAME, 'mimetype': RECORDING_MIME_TYPE}


class RunnerRegistry:
    """Active runners of this process, keyed by run id.

    A runner not looked up for `idle_ttl` seconds is treated as abandoned
    (the browser tab was closed mid-interview): it is exited, releasing its
    devices and buffered media, on the next add or lookup.
    """

    def __init__(self, idle_ttl=None, clock=time.monotonic):
        self.idle_ttl = config.RUNNER_IDLE_TTL_SEC if idle_ttl is None else idle_ttl
        self.clock = clock
        self._runners = {}
        self._seen = {}

    def add(self, runner):
        self.sweep()
        existing = self._runners.get(runner.run_id)
        if existing is not None and existing is not runner:
            existing.exit()
        self._runners[runner.run_id] = runner
        self._seen[runner.run_id] = self.clock()
        return runner

    def get(self, run_id):
        self.sweep()
        runner = self._runners.get(run_id)
        if runner is not None:
            self._seen[run_id] = self.clock()
        return runner

    def remove(self, run_id):
        self._seen.pop(run_id, None)
        runner = self._runners.pop(run_id, None)
        if runner is not None:
            runner.exit()
        return runner

    def sweep(self):
        """Exit runners idle past the TTL. Returns the evicted run ids."""
        if self.idle_ttl <= 0:
            return []
        cutoff = self.clock() - self.idle_ttl
        expired = [run_id for run_id, seen in self._seen.items() if seen < cutoff]
        for run_id in expired:
            logger.info("Releasing idle interview run %s", run_id)
            self.remove(run_id)
        return expired

    def close_all(self):
        for run_id in list(self._runners):
            self.remove(run_id)

    def __len__(self):
        return len(self._runners)
