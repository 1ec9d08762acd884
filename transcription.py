import logging
import time
from datetime import datetime

from extensions import db
from models import Interview, Transcription
from utilities.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)


def new_interview_id():
    """`interview_<epoch ms>`, suffixed when that id is already taken."""
    base = f"interview_{int(time.time() * 1000)}"
    candidate, n = base, 1
    while db.session.get(Interview, candidate) is not None:
        candidate = f"{base}_{n}"
        n += 1
    return candidate


def _parse_timestamp(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.utcnow()


class TranscriptionPersister:
    """Writes a finished run's transcripts under a new Interview."""

    def persist(self, records, job_title='', title=None):
        """Create one Interview plus one Transcription per record.

        The interview row and its transcripts are committed together; on
        any failure the whole write is rolled back and PersistenceError is
        raised.
        """
        if not records:
            raise ValidationError('There are no transcripts to save.')
        if not any((r.get('transcript') or '').strip() for r in records):
            raise ValidationError('No answers were captured during this interview.')

        interview_id = new_interview_id()
        ordered = sorted(records, key=lambda r: r.get('position', 0))
        try:
            interview = Interview(
                id=interview_id,
                title=title or f"Mock Interview - {job_title or 'General'}",
                job_title=job_title or '',
                question_count=len(ordered),
            )
            db.session.add(interview)
            for position, record in enumerate(ordered):
                db.session.add(Transcription(
                    interview_id=interview_id,
                    question_id=str(record['question_id']),
                    question=record['question'],
                    transcript=(record.get('transcript') or '').strip(),
                    position=position,
                    timestamp=_parse_timestamp(record.get('timestamp')),
                ))
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.exception("Error saving transcriptions for %s", interview_id)
            raise PersistenceError('Could not save the interview transcripts.', {'reason': str(e)})

        logger.info("Saved interview %s with %d transcriptions", interview_id, len(ordered))
        return interview


def load_transcriptions(interview_id):
    return (Transcription.query
            .filter_by(interview_id=interview_id)
            .order_by(Transcription.position)
            .all())
