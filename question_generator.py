import json
import logging
import uuid

from extensions import db
from models import QuestionSet
from utilities.constants import (
    CUSTOM_INTERVIEW_TYPE, QUESTION_BATCH_SIZE, QUESTIONS_PER_PAGE,
)
from utilities.errors import GenerationError, ValidationError
from utilities.llm import is_error_response
from utilities.parsers import parse_question_list
from utilities.validators import require_text
import config

logger = logging.getLogger(__name__)

SAVE_GUARD_TTL_SEC = 30


class QuestionDraft:
    """Unsaved generator state, kept in Redis between requests."""

    def __init__(self, draft_id=None):
        self.draft_id = draft_id or str(uuid.uuid4())
        self.job_title = ''
        self.experience_level = ''
        self.interview_type = ''
        self.custom_type = ''
        self.industry = ''
        self.job_description = ''
        self.questions = []  # [{'id': int, 'text': str}]
        self.next_id = 1

    @property
    def redis_key(self):
        return f"draft:{self.draft_id}"

    def to_dict(self):
        return {
            'draft_id': self.draft_id,
            'job_title': self.job_title,
            'experience_level': self.experience_level,
            'interview_type': self.interview_type,
            'custom_type': self.custom_type,
            'industry': self.industry,
            'job_description': self.job_description,
            'questions': json.dumps(self.questions),
            'next_id': self.next_id,
        }

    @classmethod
    def from_dict(cls, data):
        draft = cls(draft_id=data['draft_id'])
        draft.job_title = data.get('job_title', '')
        draft.experience_level = data.get('experience_level', '')
        draft.interview_type = data.get('interview_type', '')
        draft.custom_type = data.get('custom_type', '')
        draft.industry = data.get('industry', '')
        draft.job_description = data.get('job_description', '')
        try:
            draft.questions = json.loads(data.get('questions', '[]'))
        except json.JSONDecodeError:
            draft.questions = []
        draft.next_id = int(data.get('next_id', 0) or 0) or len(draft.questions) + 1
        return draft

    @classmethod
    def load(cls, r, draft_id):
        if r:
            data = r.hgetall(f"draft:{draft_id}")
            if data:
                return cls.from_dict(data)
        return None

    @property
    def resolved_type(self):
        if self.interview_type == CUSTOM_INTERVIEW_TYPE:
            return self.custom_type
        return self.interview_type


def build_question_prompt(job_title, experience_level='', interview_type='', industry='',
                          job_description='', count=QUESTION_BATCH_SIZE):
    """Blank optional fields fall back to generic wording."""
    prompt = (
        f"Generate {count} interview questions based on the {interview_type or 'general'} interview "
        f"for a {job_title} at {experience_level or 'any'} level in the {industry or 'general'} industry."
    )
    if job_description:
        prompt += f" The job description is: {job_description}."
    prompt += f" Only output the {count} questions as a numbered list without any additional text."
    return prompt


class QuestionGenerator:
    def __init__(self, r, ctx, draft=None):
        self.r = r
        self.ctx = ctx
        self.draft = draft or QuestionDraft()

    @classmethod
    def load(cls, r, ctx, draft_id):
        draft = QuestionDraft.load(r, draft_id)
        if not draft:
            return None
        return cls(r, ctx, draft)

    def generate(self, job_title, experience_level='', interview_type='', industry='',
                 job_description='', custom_type=''):
        """Generate a fresh batch, replacing the draft's question list."""
        job_title = require_text(job_title, 'Job title')
        if interview_type == CUSTOM_INTERVIEW_TYPE:
            custom_type = require_text(custom_type, 'Custom interview type')

        texts = self._request_questions(job_title, experience_level,
                                        custom_type if interview_type == CUSTOM_INTERVIEW_TYPE else interview_type,
                                        industry, job_description)

        def replace(draft):
            draft.job_title = job_title
            draft.experience_level = experience_level or ''
            draft.interview_type = interview_type or ''
            draft.custom_type = custom_type or ''
            draft.industry = industry or ''
            draft.job_description = job_description or ''
            draft.questions = []
            self._append(draft, texts)
            return draft.questions

        return self._update(replace)

    def generate_more(self):
        """Append another batch generated from the draft's stored job profile."""
        if not self.draft.job_title:
            raise ValidationError('Generate questions before asking for more.')
        texts = self._request_questions(self.draft.job_title, self.draft.experience_level,
                                        self.draft.resolved_type, self.draft.industry,
                                        self.draft.job_description)
        return self._update(lambda draft: self._append(draft, texts))

    def delete_question(self, question_id):
        question_id = int(question_id)

        def remove(draft):
            remaining = [q for q in draft.questions if q['id'] != question_id]
            if len(remaining) == len(draft.questions):
                raise ValidationError(f'Question {question_id} is not in this draft.')
            draft.questions = remaining
            return remaining

        return self._update(remove)

    def _update(self, change):
        """Apply `change(draft)` to the stored draft and write it back atomically.

        The draft is re-read under WATCH, so requests that overlap (two
        "more" clicks waiting on the AI at once) each see the other's
        questions and ids; redis-py retries the whole read-change-write on
        WatchError.
        """
        key = self.draft.redis_key

        def apply(pipe):
            data = pipe.hgetall(key)
            draft = QuestionDraft.from_dict(data) if data else QuestionDraft.from_dict(self.draft.to_dict())
            result = change(draft)
            pipe.multi()
            pipe.hset(key, mapping=draft.to_dict())
            pipe.expire(key, config.DRAFT_TTL_SEC)
            return draft, result

        draft, result = self.r.transaction(apply, key, value_from_callable=True)
        self.draft = draft
        return result

    def page(self, number=1, per_page=QUESTIONS_PER_PAGE):
        """Return one page of the accumulated list, 1-based."""
        if per_page < 1:
            raise ValidationError('per_page must be at least 1.')
        number = max(1, int(number))
        total = len(self.draft.questions)
        start = (number - 1) * per_page
        return {
            'draft_id': self.draft.draft_id,
            'page': number,
            'per_page': per_page,
            'total': total,
            'pages': (total + per_page - 1) // per_page,
            'questions': self.draft.questions[start:start + per_page],
        }

    def save(self):
        """Persist the draft as a QuestionSet.

        Returns the new set, or None when another save for this draft is
        already in flight.
        """
        owner_id = self.ctx.require_user()
        if not self.draft.questions:
            raise ValidationError('There are no questions to save.')

        guard = f"{self.draft.redis_key}:saving"
        if not self.r.set(guard, '1', nx=True, ex=SAVE_GUARD_TTL_SEC):
            logger.info("Save already in progress for draft %s; ignoring", self.draft.draft_id)
            return None
        try:
            question_set = QuestionSet(
                job_title=self.draft.job_title,
                experience_level=self.draft.experience_level,
                interview_type=self.draft.resolved_type,
                industry=self.draft.industry,
                questions=[q['text'] for q in self.draft.questions],
                owner_id=owner_id,
            )
            db.session.add(question_set)
            db.session.commit()
            logger.info("Saved question set %s (%d questions)", question_set.id, len(question_set.questions))
            return question_set
        except Exception:
            db.session.rollback()
            logger.exception("Error saving questions for draft %s", self.draft.draft_id)
            raise
        finally:
            self.r.delete(guard)

    def _request_questions(self, job_title, experience_level, interview_type, industry, job_description):
        prompt = build_question_prompt(job_title, experience_level, interview_type, industry, job_description)
        try:
            text = self.ctx.complete(prompt)
        except Exception as e:
            logger.exception("Error generating questions")
            raise GenerationError(f'Could not generate questions: {e}')
        if is_error_response(text):
            logger.error("Error generating questions: %s", text)
            raise GenerationError('Could not generate questions. Please try again.')
        texts = [t for t in parse_question_list(text) if t]
        if not texts:
            logger.error("Question response could not be parsed: %r", text[:200])
            raise GenerationError('The AI response did not contain any questions. Please try again.')
        return texts

    @staticmethod
    def _append(draft, texts):
        added = []
        for text in texts:
            added.append({'id': draft.next_id, 'text': text})
            draft.next_id += 1
        draft.questions.extend(added)
        return added
