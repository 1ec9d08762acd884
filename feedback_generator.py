import logging
from datetime import datetime

from extensions import db
from models import FeedbackSummary, Interview
from transcription import load_transcriptions
from utilities.constants import (
    FEEDBACK_FAILED_MESSAGE, FEEDBACK_LIST_PAGE, FEEDBACK_SUMMARY_KEY, OVERALL_FAILED_MESSAGE,
)
from utilities.errors import NotFoundError
from utilities.llm import is_error_response
from utilities.parsers import parse_feedback

logger = logging.getLogger(__name__)

NO_ANSWER_MESSAGE = 'No answer was recorded for this question.'


def build_feedback_prompt(question, transcript, job_title):
    return f"""Please evaluate this answer for a {job_title or 'general'} interview:

Question: {question}

Answer: {transcript}

Respond using exactly these labeled sections and nothing else:
Assessment: <a short overall assessment of the answer>
Strengths:
• <2-3 specific strengths, one per line>
Areas for Improvement:
• <2-3 actionable suggestions, one per line>
Model Answer: <a concise model answer>
Score: <a whole number from 1 to 10>/10"""


def build_overall_prompt(items, job_title):
    blocks = []
    for i, item in enumerate(items, start=1):
        blocks.append(
            f"Question {i}: {item['question']}\n"
            f"Answer: {item['transcript']}\n"
            f"Feedback: {item['feedback']}\n"
            f"Score: {item['score']}/10"
        )
    joined = "\n\n".join(blocks)
    return (
        f"Please provide overall feedback for a mock interview for a {job_title or 'general'} position.\n"
        f"Here are all the questions, answers and per-answer feedback:\n\n{joined}\n\n"
        "In one short paragraph, summarise the overall performance: recurring patterns, "
        "main strengths and weaknesses, and the most important thing to practise next."
    )


def blank_item(transcription):
    return {
        'question_id': transcription.question_id,
        'question': transcription.question,
        'transcript': transcription.transcript,
        'feedback': '',
        'strengths': [],
        'improvements': [],
        'score': 0,
        'preferred_answer': None,
    }


def get_interview(interview_id):
    interview = db.session.get(Interview, interview_id)
    if not interview:
        raise NotFoundError('Interview not found.', redirect=FEEDBACK_LIST_PAGE)
    return interview


def get_summary(interview_id):
    return FeedbackSummary.query.filter_by(interview_id=interview_id, key=FEEDBACK_SUMMARY_KEY).first()


class FeedbackGenerator:
    """Produces and stores the FeedbackSummary of one interview."""

    def __init__(self, ctx, on_progress=None):
        self.ctx = ctx
        self.on_progress = on_progress

    def ensure_feedback(self, interview_id):
        """Load the stored summary, generating it on first request."""
        interview = get_interview(interview_id)
        summary = get_summary(interview_id)
        if summary is not None:
            return self._result(interview, summary.items, summary.overall, summary.generated_at, generated=False)
        return self.generate(interview_id)

    def regenerate(self, interview_id):
        """Discard existing feedback content and run the whole sequence again."""
        get_interview(interview_id)
        return self.generate(interview_id)

    def generate(self, interview_id):
        interview = get_interview(interview_id)
        items = [blank_item(t) for t in load_transcriptions(interview_id)]

        # One AI request in flight at a time, in question order
        for index, item in enumerate(items):
            items[index] = self._evaluate(item, interview.job_title)
            if self.on_progress:
                self.on_progress(index, items[index])

        overall = self._overall(items, interview.job_title)
        generated_at = datetime.utcnow()
        warning = self._store(interview_id, items, overall, generated_at)
        result = self._result(interview, items, overall, generated_at, generated=True)
        if warning:
            result['warning'] = warning
        return result

    def _evaluate(self, item, job_title):
        if not item['transcript'].strip():
            return dict(item, feedback=NO_ANSWER_MESSAGE)
        try:
            text = self.ctx.complete(build_feedback_prompt(item['question'], item['transcript'], job_title))
            if is_error_response(text):
                raise RuntimeError(text)
        except Exception as e:
            logger.error("Error generating feedback for question %s: %s", item['question_id'], e)
            return dict(item, feedback=FEEDBACK_FAILED_MESSAGE, strengths=[], improvements=[], score=0)
        return dict(item, **parse_feedback(text))

    def _overall(self, items, job_title):
        try:
            text = self.ctx.complete(build_overall_prompt(items, job_title))
            if is_error_response(text) or not text.strip():
                raise RuntimeError(text or 'empty response')
            return text.strip()
        except Exception as e:
            logger.error("Error generating overall feedback: %s", e)
            return OVERALL_FAILED_MESSAGE

    def _store(self, interview_id, items, overall, generated_at):
        """Upsert the single summary record. Returns a warning string on failure."""
        try:
            summary = get_summary(interview_id)
            if summary is None:
                summary = FeedbackSummary(interview_id=interview_id, key=FEEDBACK_SUMMARY_KEY)
                db.session.add(summary)
            summary.items = [dict(item) for item in items]
            summary.overall = overall
            summary.generated_at = generated_at
            db.session.commit()
            logger.info("Feedback saved for %s", interview_id)
            return None
        except Exception:
            db.session.rollback()
            logger.exception("Error saving feedback for %s", interview_id)
            return 'Feedback was generated but could not be saved. Please regenerate it.'

    @staticmethod
    def _result(interview, items, overall, generated_at, generated):
        return {
            'interview': interview.to_dict(),
            'items': list(items),
            'overall': overall,
            'generated_at': generated_at.isoformat() if generated_at else None,
            'generated': generated,
        }
