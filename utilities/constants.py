# Question generation
QUESTION_BATCH_SIZE = 10
QUESTIONS_PER_PAGE = 5
EXPERIENCE_LEVELS = ['entry-level', 'mid-level', 'senior', 'lead']
INTERVIEW_TYPES = ['phone-screening', 'technical', 'behavioural', 'case-study', 'others']
CUSTOM_INTERVIEW_TYPE = 'others'

# Question selector
SORT_OPTIONS = ('newest', 'oldest', 'jobTitle')
SELECT_UNCHECKED = 'unchecked'
SELECT_CHECKED = 'checked'
SELECT_INDETERMINATE = 'indeterminate'

# Recording
PREFERRED_MIME_TYPE = 'video/webm;codecs=vp9,opus'
RECORDING_MIME_TYPE = 'video/webm'
RECORDING_FILENAME = 'mock-interview-recording.webm'

# Feedback
FEEDBACK_SUMMARY_KEY = 'summary'
FEEDBACK_FAILED_MESSAGE = 'Failed to generate feedback. Please try again later.'
OVERALL_FAILED_MESSAGE = 'Failed to generate overall feedback. Please try again later.'
MIN_SCORE = 1
MAX_SCORE = 10
PREVIEW_ITEM_COUNT = 2
PREVIEW_STRENGTH_COUNT = 2

# Redirect targets for not-found detail pages
QUESTION_LIST_PAGE = '/question-sets'
FEEDBACK_LIST_PAGE = '/feedback'
