import atexit
import io
import logging

from flask import Blueprint, request, jsonify, send_file

import dashboard
import question_selector
from feedback_generator import FeedbackGenerator
from interview_runner import EXITED, STOPPED, RunnerRegistry, InterviewRunner, download_headers, format_elapsed
from media import ClientMediaDevices
from question_generator import QuestionGenerator
from question_selector import QuestionSelector, load_handoff
from transcription import TranscriptionPersister
from utilities.constants import QUESTION_LIST_PAGE
from utilities.context import RequestContext
from utilities.errors import AppError, NotFoundError, SessionStoreUnavailable, ValidationError
from utilities.validators import parse_flag

logger = logging.getLogger(__name__)

# Redis connection from the app factory
r = None
runners = RunnerRegistry()
atexit.register(runners.close_all)


def _ctx():
    return RequestContext(user_id=request.headers.get('X-User-Id') or None)


def _json():
    return request.get_json(silent=True) or {}


def _store():
    if not r:
        raise SessionStoreUnavailable()
    return r


def _confirm_flag(data):
    return data.get('confirm', request.args.get('confirm', False))


def _runner(run_id):
    runner = runners.get(run_id)
    if not runner:
        raise NotFoundError('Mock interview session not found.', redirect=QUESTION_LIST_PAGE)
    return runner


def _runner_payload(runner, **extra):
    payload = runner.snapshot()
    payload['elapsed'] = format_elapsed(runner.elapsed_seconds)
    payload.update(extra)
    return payload


def _draft_generator(draft_id):
    generator = QuestionGenerator.load(_store(), _ctx(), draft_id)
    if not generator:
        raise NotFoundError('Question draft not found or expired.', redirect='/questions/generate')
    return generator


def init_app(app, redis_conn):
    """Initializes the routes and registers the blueprint with the Flask app."""
    global r
    r = redis_conn

    # Built per app so the factory can run more than once (tests)
    main_bp = Blueprint('main', __name__)

    @main_bp.errorhandler(AppError)
    def handle_app_error(e):
        logger.warning("%s on %s %s: %s", type(e).__name__, request.method, request.path, e.message)
        return jsonify(e.to_dict()), e.status_code

    @main_bp.route('/')
    def index():
        return jsonify({'status': 'active', 'service': 'Mock Interview API', 'redis': bool(r)})

    # === Question generator ===

    @main_bp.route('/questions/generate', methods=['POST'])
    def generate_questions():
        """Generate a fresh batch of questions into a (new or existing) draft.

        Expects 'job_title' and optionally 'experience_level', 'interview_type',
        'custom_type', 'industry', 'job_description' and 'draft_id'.
        """
        data = _json()
        store = _store()
        generator = _draft_generator(data['draft_id']) if data.get('draft_id') else QuestionGenerator(store, _ctx())
        generator.generate(
            data.get('job_title'),
            experience_level=data.get('experience_level', ''),
            interview_type=data.get('interview_type', ''),
            industry=data.get('industry', ''),
            job_description=data.get('job_description', ''),
            custom_type=data.get('custom_type', ''),
        )
        return jsonify(generator.page(1))

    @main_bp.route('/questions/drafts/<draft_id>', methods=['GET'])
    def draft_page(draft_id):
        generator = _draft_generator(draft_id)
        try:
            page = int(request.args.get('page', 1))
            per_page = int(request.args.get('per_page', 0)) or None
        except ValueError:
            raise ValidationError('page and per_page must be integers.')
        return jsonify(generator.page(page, per_page) if per_page else generator.page(page))

    @main_bp.route('/questions/drafts/<draft_id>/more', methods=['POST'])
    def more_questions(draft_id):
        generator = _draft_generator(draft_id)
        added = generator.generate_more()
        payload = generator.page(1)
        payload['added'] = added
        return jsonify(payload)

    @main_bp.route('/questions/drafts/<draft_id>/questions/<int:question_id>', methods=['DELETE'])
    def delete_draft_question(draft_id, question_id):
        generator = _draft_generator(draft_id)
        remaining = generator.delete_question(question_id)
        return jsonify({'draft_id': draft_id, 'questions': remaining, 'total': len(remaining)})

    @main_bp.route('/questions/drafts/<draft_id>/save', methods=['POST'])
    def save_draft(draft_id):
        generator = _draft_generator(draft_id)
        question_set = generator.save()
        if question_set is None:
            return jsonify({'saved': False, 'message': 'Save already in progress.'})
        return jsonify({'saved': True, 'question_set': question_set.to_dict(), 'next': QUESTION_LIST_PAGE}), 201

    # === Question selector ===

    @main_bp.route('/question-sets', methods=['GET'])
    def list_question_sets():
        sets = question_selector.list_sets(
            job_title=request.args.get('jobTitle') or None,
            sort=request.args.get('sort', 'newest'),
        )
        session_id = request.args.get('sessionId')
        selector = QuestionSelector(r, session_id) if (session_id and r) else None
        payload = []
        for question_set in sets:
            entry = question_set.to_dict()
            if selector:
                entry['selection_state'] = selector.set_state(question_set.id)
                selected = selector.selected_indices(question_set)
                entry['selected'] = [i in selected for i in range(len(question_set.questions))]
            payload.append(entry)
        return jsonify({'question_sets': payload, 'job_titles': question_selector.job_titles()})

    @main_bp.route('/question-sets/<int:set_id>', methods=['DELETE'])
    def delete_question_set(set_id):
        data = _json()
        selector = QuestionSelector(r, data['session_id']) if (data.get('session_id') and r) else None
        titles = question_selector.delete_set(_ctx(), set_id, confirm=_confirm_flag(data), selector=selector)
        return jsonify({'deleted': True, 'job_titles': titles})

    @main_bp.route('/question-sets/<int:set_id>/questions/<int:index>', methods=['DELETE'])
    def delete_set_question(set_id, index):
        data = _json()
        selector = QuestionSelector(r, data['session_id']) if (data.get('session_id') and r) else None
        question_set, titles = question_selector.delete_question(
            _ctx(), set_id, index, confirm=_confirm_flag(data), selector=selector)
        return jsonify({
            'deleted': True,
            'set_deleted': question_set is None,
            'question_set': question_set.to_dict() if question_set else None,
            'job_titles': titles,
        })

    @main_bp.route('/selection/<session_id>', methods=['GET'])
    def get_selection(session_id):
        items = QuestionSelector(_store(), session_id).items()
        return jsonify({'items': items, 'count': len(items)})

    @main_bp.route('/selection/<session_id>', methods=['DELETE'])
    def clear_selection(session_id):
        QuestionSelector(_store(), session_id).clear()
        return jsonify({'items': [], 'count': 0})

    @main_bp.route('/selection/<session_id>/toggle', methods=['POST'])
    def toggle_question(session_id):
        data = _json()
        if 'set_id' not in data or 'index' not in data:
            raise ValidationError('set_id and index are required.')
        selector = QuestionSelector(_store(), session_id)
        items = selector.toggle(data['set_id'], data['index'])
        return jsonify({'items': items, 'count': len(items), 'selection_state': selector.set_state(data['set_id'])})

    @main_bp.route('/selection/<session_id>/toggle-all', methods=['POST'])
    def toggle_set(session_id):
        data = _json()
        if 'set_id' not in data:
            raise ValidationError('set_id is required.')
        selector = QuestionSelector(_store(), session_id)
        items = selector.toggle_all(data['set_id'])
        return jsonify({'items': items, 'count': len(items), 'selection_state': selector.set_state(data['set_id'])})

    @main_bp.route('/selection/<session_id>/start', methods=['POST'])
    def start_mock_interview(session_id):
        items = QuestionSelector(_store(), session_id).start_mock_interview()
        return jsonify({'questions': items, 'session_id': session_id, 'next': '/mock-interview/start'})

    # === Interview runner ===

    @main_bp.route('/mock-interview/start', methods=['POST'])
    def create_run():
        data = _json()
        session_id = data.get('session_id')
        if not session_id:
            raise ValidationError('session_id is required.')
        questions = load_handoff(_store(), session_id)
        if not questions:
            raise NotFoundError('No questions selected for mock interview.', redirect=QUESTION_LIST_PAGE)
        runner = runners.add(InterviewRunner(questions, ClientMediaDevices()))
        logger.info("Mock interview run %s started with %d questions", runner.run_id, len(questions))
        return jsonify(_runner_payload(runner)), 201

    @main_bp.route('/mock-interview/runs/<run_id>', methods=['GET'])
    def run_status(run_id):
        return jsonify(_runner_payload(_runner(run_id)))

    @main_bp.route('/mock-interview/runs/<run_id>/camera', methods=['POST'])
    def start_camera(run_id):
        """The browser reports the outcome of getUserMedia and its supported codecs."""
        data = _json()
        runner = _runner(run_id)
        devices = ClientMediaDevices(
            granted=parse_flag(data.get('granted'), default=True),
            error=data.get('error'),
            supported_types=data.get('supported_types') or [],
        )
        runner.start_camera(devices)
        return jsonify(_runner_payload(runner))

    @main_bp.route('/mock-interview/runs/<run_id>/record', methods=['POST'])
    def start_recording(run_id):
        runner = _runner(run_id)
        runner.start_recording()
        return jsonify(_runner_payload(runner))

    @main_bp.route('/mock-interview/runs/<run_id>/chunk', methods=['POST'])
    def push_chunk(run_id):
        runner = _runner(run_id)
        upload = request.files.get('chunk')
        data = upload.read() if upload else request.get_data()
        runner.push_chunk(data)
        return jsonify({'received': len(data), 'elapsed_seconds': runner.elapsed_seconds})

    @main_bp.route('/mock-interview/runs/<run_id>/transcript', methods=['POST'])
    def push_transcript(run_id):
        data = _json()
        runner = _runner(run_id)
        runner.push_transcript(data.get('text', ''), is_final=parse_flag(data.get('is_final'), default=True))
        return jsonify({'buffered': ' '.join(runner.transcript_buffer)})

    @main_bp.route('/mock-interview/runs/<run_id>/next', methods=['POST'])
    def next_question(run_id):
        runner = _runner(run_id)
        finished = runner.next_question()
        payload = _runner_payload(runner, finished=finished, dialog=runner.state == STOPPED)
        if runner.state == EXITED:
            runners.remove(run_id)
        return jsonify(payload)

    @main_bp.route('/mock-interview/runs/<run_id>/previous', methods=['POST'])
    def previous_question(run_id):
        runner = _runner(run_id)
        runner.previous_question()
        return jsonify(_runner_payload(runner))

    @main_bp.route('/mock-interview/runs/<run_id>/stop', methods=['POST'])
    def stop_recording(run_id):
        runner = _runner(run_id)
        recording = runner.stop()
        return jsonify(_runner_payload(runner, dialog=True, recording_size=len(recording)))

    @main_bp.route('/mock-interview/runs/<run_id>/save', methods=['POST'])
    def save_recording(run_id):
        """Persist transcripts first, then send the recording as a download."""
        data = _json()
        runner = _runner(run_id)
        interview_id, recording = runner.save(TranscriptionPersister(), title=data.get('title'))
        runners.remove(run_id)
        headers = download_headers()
        response = send_file(
            io.BytesIO(recording),
            mimetype=headers['mimetype'],
            as_attachment=True,
            download_name=headers['filename'],
        )
        if interview_id:
            response.headers['X-Interview-Id'] = interview_id
            response.headers['X-Feedback-Url'] = f'/interviews/{interview_id}/feedback'
        return response

    @main_bp.route('/mock-interview/runs/<run_id>/discard', methods=['POST'])
    def discard_recording(run_id):
        runner = _runner(run_id)
        try:
            runner.discard()
        finally:
            runners.remove(run_id)
        return jsonify({'discarded': True, 'released': runner.released, 'next': QUESTION_LIST_PAGE})

    @main_bp.route('/mock-interview/runs/<run_id>/exit', methods=['POST'])
    def exit_interview(run_id):
        runner = runners.remove(run_id)
        return jsonify({'exited': True, 'released': runner.released if runner else True, 'next': QUESTION_LIST_PAGE})

    # === Feedback ===

    @main_bp.route('/interviews/<interview_id>/feedback', methods=['GET'])
    def interview_feedback(interview_id):
        return jsonify(FeedbackGenerator(_ctx()).ensure_feedback(interview_id))

    @main_bp.route('/interviews/<interview_id>/feedback/regenerate', methods=['POST'])
    def regenerate_feedback(interview_id):
        return jsonify(FeedbackGenerator(_ctx()).regenerate(interview_id))

    @main_bp.route('/feedback', methods=['GET'])
    def feedback_dashboard():
        entries = dashboard.list_entries(request.args.get('search', ''))
        return jsonify({'entries': entries, 'count': len(entries)})

    @main_bp.route('/feedback/<interview_id>/preview', methods=['GET'])
    def feedback_preview(interview_id):
        return jsonify(dashboard.preview(interview_id))

    @main_bp.route('/feedback/<interview_id>', methods=['GET'])
    def feedback_detail(interview_id):
        return jsonify(dashboard.detail(interview_id))

    @main_bp.route('/feedback/<interview_id>', methods=['DELETE'])
    def delete_feedback(interview_id):
        deleted = dashboard.delete(_ctx(), interview_id, confirm=_confirm_flag(_json()))
        return jsonify({'deleted': True, 'id': deleted})

    # Register the blueprint with the main Flask app
    app.register_blueprint(main_bp)
    app.extensions['runners'] = runners
