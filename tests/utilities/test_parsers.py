import pytest

from utilities.parsers import (
    clean_emphasis, extract_score, parse_bullets, parse_feedback, parse_question_list, split_sections,
)


def test_parse_question_list_strips_numbering_and_blank_lines():
    text = "1. What is a race condition?\n\n2) Explain idempotency.\n   3.   Describe CAP.  \n"
    assert parse_question_list(text) == [
        'What is a race condition?',
        'Explain idempotency.',
        'Describe CAP.',
    ]


def test_parse_question_list_keeps_unnumbered_lines():
    assert parse_question_list("Tell me about yourself\nWhy this role?") == [
        'Tell me about yourself', 'Why this role?',
    ]
    assert parse_question_list('') == []


@pytest.mark.parametrize('text, expected', [
    ('Score: 7/10', 7),
    ('**Score:** 9 out of 10', 9),
    ('score: 15', 10),
    ('Score: 0/10', 1),
    ('No score given here', 0),
    ('Score: n/a', 0),
    ('', 0),
])
def test_extract_score(text, expected):
    assert extract_score(text) == expected


def test_score_comes_from_the_score_line_not_earlier_prose():
    text = """Assessment: Mentions the single underscore: 2 conventions correctly.
Strengths:
• Knows naming rules
Score: 8/10"""
    assert parse_feedback(text)['score'] == 8


def test_score_on_the_line_after_its_label():
    assert extract_score("Strengths:\n• Clear\nScore:\n6/10") == 6


def test_inline_score_is_used_when_there_is_no_score_line():
    assert extract_score("Good answer overall. Final Score: 7/10") == 7
    assert extract_score("Mentions the underscore: 3 times") == 0


def test_parse_bullets_cleans_markers_and_emphasis():
    section = "• **Clear** structure\n- Good example\n* *Concise*\n2. Confident tone\n\n"
    assert parse_bullets(section) == ['Clear structure', 'Good example', 'Concise', 'Confident tone']


def test_parse_bullets_is_idempotent():
    items = parse_bullets("• One\n• Two **bold**")
    assert parse_bullets("\n".join(items)) == items


def test_clean_emphasis():
    assert clean_emphasis('**Strong** and *weak* and __under__') == 'Strong and weak and under'


def test_parse_feedback_reads_every_section():
    text = """Assessment: A clear answer that covers the basics.
Strengths:
• Clear structure
• **Good** example
Areas for Improvement:
• Mention trade-offs
• Quantify impact
Model Answer: A race condition happens when two threads race.
Score: 8/10"""

    parsed = parse_feedback(text)

    assert parsed == {
        'feedback': 'A clear answer that covers the basics.',
        'strengths': ['Clear structure', 'Good example'],
        'improvements': ['Mention trade-offs', 'Quantify impact'],
        'preferred_answer': 'A race condition happens when two threads race.',
        'score': 8,
    }


def test_parse_feedback_handles_markdown_labels_in_any_order():
    text = """## Score: 6/10
**Weaknesses:**
- Too short
**Key Strengths:**
- Honest
The candidate answered briefly."""

    parsed = parse_feedback(text)

    assert parsed['score'] == 6
    assert parsed['improvements'] == ['Too short']
    assert parsed['strengths'] == ['Honest', 'The candidate answered briefly.']
    assert parsed['preferred_answer'] is None


def test_parse_feedback_uses_preamble_without_assessment_label():
    parsed = parse_feedback("Solid overall.\nStrengths:\n• Depth")
    assert parsed['feedback'] == 'Solid overall.'
    assert parsed['strengths'] == ['Depth']


def test_parse_feedback_degrades_on_unstructured_text():
    parsed = parse_feedback('The model rambled without any labels.')
    assert parsed['strengths'] == []
    assert parsed['improvements'] == []
    assert parsed['score'] == 0
    assert parsed['feedback'] == 'The model rambled without any labels.'


def test_split_sections_keeps_first_occurrence():
    sections = split_sections("Strengths: a\nStrengths: b")
    assert sections['strengths'] == 'a'
    assert sections['preamble'] == ''
