import logging
import math

from extensions import db
from feedback_generator import get_interview, get_summary
from models import FeedbackSummary, Interview
from utilities.constants import FEEDBACK_LIST_PAGE, PREVIEW_ITEM_COUNT, PREVIEW_STRENGTH_COUNT
from utilities.errors import ConfirmationRequired, NotFoundError
from utilities.validators import require_confirmation

logger = logging.getLogger(__name__)


def average_score(items):
    """Rounded mean of item scores; halves round up. 0 for no items."""
    if not items:
        return 0
    total = sum(item.get('score') or 0 for item in items)
    return int(math.floor(total / len(items) + 0.5))


def score_band(score):
    if score >= 8:
        return 'excellent'
    if score >= 6:
        return 'good'
    if score >= 4:
        return 'fair'
    return 'poor'


def _entry(interview, summary):
    score = average_score(summary.items)
    return {
        'id': interview.id,
        'interview': interview.to_dict(),
        'feedback': summary.to_dict(),
        'average_score': score,
        'score_band': score_band(score),
    }


def list_entries(search=''):
    """Every interview that has feedback, newest first."""
    rows = (db.session.query(Interview, FeedbackSummary)
            .join(FeedbackSummary, FeedbackSummary.interview_id == Interview.id)
            .order_by(Interview.created_at.desc(), Interview.id.desc())
            .all())
    entries = [_entry(interview, summary) for interview, summary in rows]
    term = (search or '').strip().lower()
    if term:
        entries = [
            e for e in entries
            if term in e['interview']['title'].lower() or term in e['interview']['job_title'].lower()
        ]
    return entries


def _require_summary(interview_id):
    interview = get_interview(interview_id)
    summary = get_summary(interview_id)
    if summary is None:
        raise NotFoundError('No feedback found for this interview.', redirect=FEEDBACK_LIST_PAGE)
    return interview, summary


def preview(interview_id):
    interview, summary = _require_summary(interview_id)
    items = summary.items or []
    highlights = [
        {
            'question': item['question'],
            'score': item.get('score', 0),
            'strengths': list(item.get('strengths') or [])[:PREVIEW_STRENGTH_COUNT],
            'more_strengths': len(item.get('strengths') or []) > PREVIEW_STRENGTH_COUNT,
        }
        for item in items[:PREVIEW_ITEM_COUNT]
    ]
    score = average_score(items)
    return {
        'id': interview.id,
        'title': interview.title,
        'job_title': interview.job_title,
        'created_at': interview.created_at.isoformat(),
        'average_score': score,
        'score_band': score_band(score),
        'overall': summary.overall,
        'highlights': highlights,
        'more_questions': max(0, len(items) - PREVIEW_ITEM_COUNT),
    }


def detail(interview_id):
    interview, summary = _require_summary(interview_id)
    entry = _entry(interview, summary)
    entry['items'] = [dict(item, score_band=score_band(item.get('score', 0))) for item in summary.items or []]
    return entry


def delete(ctx, interview_id, confirm=False):
    """Remove the feedback summary only; the interview and transcripts stay."""
    ctx.require_user()
    interview, summary = _require_summary(interview_id)
    if not require_confirmation(confirm):
        raise ConfirmationRequired(
            'This will permanently delete this feedback entry. This action cannot be undone.',
            {'confirm_required': True},
        )
    try:
        db.session.delete(summary)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Error deleting feedback for %s", interview_id)
        raise
    logger.info("Deleted feedback for %s", interview.id)
    return interview.id
