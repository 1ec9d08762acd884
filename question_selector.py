import json
import logging

from extensions import db
from models import QuestionSet
from utilities.constants import (
    QUESTION_LIST_PAGE, SELECT_CHECKED, SELECT_INDETERMINATE, SELECT_UNCHECKED, SORT_OPTIONS,
)
from utilities.errors import ConfirmationRequired, NotFoundError, ValidationError
from utilities.validators import require_confirmation
import config

logger = logging.getLogger(__name__)


def question_item_id(set_id, index):
    return f"{set_id}-{index}"


def make_question_item(question_set, index):
    """Denormalized selection record; self-sufficient for the runner."""
    return {
        'id': question_item_id(question_set.id, index),
        'entry_id': question_set.id,
        'job_title': question_set.job_title,
        'question': question_set.questions[index],
        'timestamp': question_set.created_at.isoformat(),
    }


def handoff_key(session_id):
    return f"mock_interview:{session_id}"


def load_handoff(r, session_id):
    """Questions handed to the interview runner, or None."""
    if not r:
        return None
    raw = r.get(handoff_key(session_id))
    if not raw:
        return None
    try:
        items = json.loads(raw)
    except json.JSONDecodeError:
        logger.error("Corrupt mock interview hand-off for session %s", session_id)
        return None
    return items if isinstance(items, list) else None


def get_question_set(set_id):
    try:
        set_id = int(set_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid question set id '{set_id}'.")
    question_set = db.session.get(QuestionSet, set_id)
    if not question_set:
        raise NotFoundError('Question set not found.', redirect=QUESTION_LIST_PAGE)
    return question_set


def question_index(question_set, index):
    try:
        index = int(index)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid question index '{index}'.")
    if not 0 <= index < len(question_set.questions):
        raise ValidationError('Question index out of range.')
    return index


def list_sets(job_title=None, sort='newest'):
    if sort not in SORT_OPTIONS:
        raise ValidationError(f"Unknown sort option '{sort}'.")
    query = QuestionSet.query
    if job_title:
        query = query.filter(QuestionSet.job_title == job_title)
    if sort == 'newest':
        query = query.order_by(QuestionSet.created_at.desc(), QuestionSet.id.desc())
    elif sort == 'oldest':
        query = query.order_by(QuestionSet.created_at.asc(), QuestionSet.id.asc())
    else:
        query = query.order_by(QuestionSet.job_title.asc(), QuestionSet.id.asc())
    return query.all()


def job_titles():
    """Unique job titles across all sets, for the filter dropdown."""
    titles = []
    for (title,) in db.session.query(QuestionSet.job_title).order_by(QuestionSet.id):
        if title not in titles:
            titles.append(title)
    return titles


class QuestionSelector:
    """Selection of individual questions across sets for one browser session."""

    def __init__(self, r, session_id):
        self.r = r
        self.session_id = session_id

    @property
    def redis_key(self):
        return f"selection:{self.session_id}"

    def items(self):
        raw = self.r.get(self.redis_key) if self.r else None
        if not raw:
            return []
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return []

    def _store(self, items):
        self.r.set(self.redis_key, json.dumps(items), ex=config.HANDOFF_TTL_SEC)
        return items

    def is_selected(self, set_id, index):
        return int(index) in self.selected_indices(get_question_set(set_id))

    def toggle(self, set_id, index):
        question_set = get_question_set(set_id)
        index = question_index(question_set, index)
        item_id = question_item_id(question_set.id, index)
        items = self.current_items(question_set)
        if any(item['id'] == item_id for item in items):
            items = [item for item in items if item['id'] != item_id]
        else:
            items.append(make_question_item(question_set, index))
        return self._store(items)

    def toggle_all(self, set_id):
        """Select every question in the set, or deselect them all if already all selected."""
        question_set = get_question_set(set_id)
        items = self.current_items(question_set)
        if self.set_state(question_set.id, items) == SELECT_CHECKED:
            items = [item for item in items if item['entry_id'] != question_set.id]
        else:
            selected = {item['id'] for item in items}
            for index in range(len(question_set.questions)):
                if question_item_id(question_set.id, index) not in selected:
                    items.append(make_question_item(question_set, index))
        return self._store(items)

    def current_items(self, question_set):
        """This session's items, with the set's entries re-pointed at its current questions.

        Another session may have deleted questions from the set since they
        were picked, shifting indices; entries are matched back by question
        text and dropped when the question is gone.
        """
        taken = set()
        items = []
        for item in self.items():
            if item['entry_id'] != question_set.id:
                items.append(item)
                continue
            index = next((i for i, text in enumerate(question_set.questions)
                          if text == item['question'] and i not in taken), None)
            if index is None:
                continue
            taken.add(index)
            items.append(dict(item, id=question_item_id(question_set.id, index)))
        return items

    def selected_indices(self, question_set):
        return {
            int(item['id'].rsplit('-', 1)[1])
            for item in self.current_items(question_set)
            if item['entry_id'] == question_set.id
        }

    def set_state(self, set_id, items=None):
        question_set = get_question_set(set_id)
        items = self.current_items(question_set) if items is None else items
        count = sum(1 for item in items if item['entry_id'] == question_set.id)
        if count == 0:
            return SELECT_UNCHECKED
        if count >= len(question_set.questions):
            return SELECT_CHECKED
        return SELECT_INDETERMINATE

    def clear(self):
        self.r.delete(self.redis_key)
        return []

    def start_mock_interview(self):
        """Copy the selection, by value, into the runner hand-off slot."""
        items = self.items()
        if not items:
            raise ValidationError('Please select at least one question for your mock interview.')
        self.r.set(handoff_key(self.session_id), json.dumps(items), ex=config.HANDOFF_TTL_SEC)
        logger.info("Mock interview hand-off for session %s with %d questions", self.session_id, len(items))
        return items

    def forget_set(self, set_id):
        items = [item for item in self.items() if item['entry_id'] != set_id]
        self._store(items)

    def forget_question(self, set_id, index):
        """Drop a deleted question and shift later indices of the same set down."""
        items = []
        for item in self.items():
            if item['entry_id'] != set_id:
                items.append(item)
                continue
            item_index = int(item['id'].rsplit('-', 1)[1])
            if item_index == index:
                continue
            if item_index > index:
                item = dict(item, id=question_item_id(set_id, item_index - 1))
            items.append(item)
        self._store(items)


def delete_set(ctx, set_id, confirm=False, selector=None):
    """Delete a whole set. Returns the job titles left for the filter."""
    ctx.require_user()
    question_set = get_question_set(set_id)
    if not require_confirmation(confirm):
        raise ConfirmationRequired(
            f"Delete all {len(question_set.questions)} questions for '{question_set.job_title}'?",
            {'confirm_required': True},
        )
    set_id = question_set.id
    try:
        db.session.delete(question_set)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Error deleting question set %s", set_id)
        raise
    logger.info("Deleted question set %s", set_id)
    if selector:
        selector.forget_set(set_id)
    return job_titles()


def delete_question(ctx, set_id, index, confirm=False, selector=None):
    """Delete one question; deleting the last one deletes the set.

    Returns (question_set or None, remaining job titles).
    """
    ctx.require_user()
    question_set = get_question_set(set_id)
    index = question_index(question_set, index)
    if not require_confirmation(confirm):
        raise ConfirmationRequired(
            f"Delete the question '{question_set.questions[index]}'?",
            {'confirm_required': True},
        )

    if len(question_set.questions) == 1:
        return None, delete_set(ctx, set_id, confirm=True, selector=selector)

    remaining = [q for i, q in enumerate(question_set.questions) if i != index]
    try:
        # Assign a new list so the JSON column is flagged dirty
        question_set.questions = remaining
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Error deleting question %s from set %s", index, set_id)
        raise
    if selector:
        selector.forget_question(question_set.id, index)
    return question_set, job_titles()
