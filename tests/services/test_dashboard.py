from datetime import datetime, timedelta

import pytest

import dashboard
from extensions import db
from models import FeedbackSummary, Interview, Transcription
from utilities.errors import ConfirmationRequired, NotFoundError


def _item(n, score, strengths=()):
    return {
        'question_id': f'q{n}', 'question': f'Question {n}', 'transcript': 'answer',
        'feedback': 'ok', 'strengths': list(strengths), 'improvements': [], 'score': score,
        'preferred_answer': None,
    }


def _interview(interview_id, title, job_title, items, created_at=None):
    interview = Interview(id=interview_id, title=title, job_title=job_title, question_count=len(items or []))
    if created_at:
        interview.created_at = created_at
    db.session.add(interview)
    db.session.add(Transcription(interview_id=interview_id, question_id='q0', question='Question 0',
                                 transcript='answer', position=0))
    if items is not None:
        db.session.add(FeedbackSummary(interview_id=interview_id, key='summary', items=items, overall='Fine.'))
    db.session.commit()
    return interview_id


@pytest.mark.parametrize('scores, expected', [
    ([8, 6, 0], 5),
    ([7, 8], 8),
    ([5], 5),
    ([], 0),
])
def test_average_score(scores, expected):
    assert dashboard.average_score([{'score': s} for s in scores]) == expected


@pytest.mark.parametrize('score, band', [(9, 'excellent'), (6, 'good'), (4, 'fair'), (3, 'poor')])
def test_score_band(score, band):
    assert dashboard.score_band(score) == band


def test_list_entries_only_includes_interviews_with_feedback(app_ctx):
    now = datetime.utcnow()
    _interview('interview_1', 'Mock Interview - Backend', 'Backend Engineer',
               [_item(0, 8), _item(1, 6), _item(2, 0)], now - timedelta(hours=1))
    _interview('interview_2', 'Friday practice', 'Data Analyst', [_item(0, 9)], now)
    _interview('interview_3', 'No feedback yet', 'Backend Engineer', None, now)

    entries = dashboard.list_entries()

    assert [e['id'] for e in entries] == ['interview_2', 'interview_1']
    assert entries[1]['average_score'] == 5
    assert entries[1]['score_band'] == 'fair'


def test_list_entries_search_is_case_insensitive(app_ctx):
    _interview('interview_1', 'Mock Interview - Backend', 'Backend Engineer', [_item(0, 8)])
    _interview('interview_2', 'Friday practice', 'Data Analyst', [_item(0, 9)])

    assert [e['id'] for e in dashboard.list_entries('FRIDAY')] == ['interview_2']
    assert [e['id'] for e in dashboard.list_entries('backend eng')] == ['interview_1']
    assert dashboard.list_entries('designer') == []


def test_preview_shows_first_two_highlights(app_ctx):
    items = [_item(0, 8, ['a', 'b', 'c']), _item(1, 6, ['d']), _item(2, 4)]
    _interview('interview_1', 'Mock Interview - Backend', 'Backend Engineer', items)

    preview = dashboard.preview('interview_1')

    assert [h['question'] for h in preview['highlights']] == ['Question 0', 'Question 1']
    assert preview['highlights'][0]['strengths'] == ['a', 'b']
    assert preview['highlights'][0]['more_strengths'] is True
    assert preview['more_questions'] == 1
    assert preview['average_score'] == 6


def test_detail_without_feedback_redirects(app_ctx):
    _interview('interview_3', 'No feedback yet', 'Backend Engineer', None)
    with pytest.raises(NotFoundError) as excinfo:
        dashboard.detail('interview_3')
    assert excinfo.value.details['redirect'] == '/feedback'


def test_delete_removes_only_the_summary(app_ctx, ctx):
    _interview('interview_1', 'Mock Interview - Backend', 'Backend Engineer', [_item(0, 8)])

    with pytest.raises(ConfirmationRequired):
        dashboard.delete(ctx, 'interview_1')
    dashboard.delete(ctx, 'interview_1', confirm=True)

    assert FeedbackSummary.query.count() == 0
    assert db.session.get(Interview, 'interview_1') is not None
    assert Transcription.query.filter_by(interview_id='interview_1').count() == 1
    assert dashboard.list_entries() == []
