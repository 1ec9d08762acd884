from extensions import db
from datetime import datetime

# Note: The db instance is created in extensions.py
# and initialized in the app factory to avoid circular imports.


class QuestionSet(db.Model):
    """A saved group of generated questions for one job profile."""
    id = db.Column(db.Integer, primary_key=True)
    job_title = db.Column(db.String(200), nullable=False)
    experience_level = db.Column(db.String(50), nullable=False, default='')
    interview_type = db.Column(db.String(100), nullable=False, default='')
    industry = db.Column(db.String(200), nullable=False, default='')
    questions = db.Column(db.JSON, nullable=False, default=list)
    owner_id = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'job_title': self.job_title,
            'experience_level': self.experience_level,
            'interview_type': self.interview_type,
            'industry': self.industry,
            'questions': list(self.questions or []),
            'owner_id': self.owner_id,
            'created_at': self.created_at.isoformat(),
        }

    def __repr__(self):
        return f'<QuestionSet {self.id} for {self.job_title}>'


class Interview(db.Model):
    """Represents a single recorded mock interview."""
    id = db.Column(db.String(64), primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    job_title = db.Column(db.String(200), nullable=False, default='')
    question_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Transcripts are ordered by their position in the run
    transcriptions = db.relationship(
        'Transcription', backref='interview', lazy=True,
        cascade="all, delete-orphan", order_by='Transcription.position',
    )
    feedback = db.relationship('FeedbackSummary', backref='interview', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'job_title': self.job_title,
            'question_count': self.question_count,
            'created_at': self.created_at.isoformat(),
        }

    def __repr__(self):
        return f'<Interview {self.id}>'


class Transcription(db.Model):
    """Speech-to-text result for one question within one interview."""
    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.String(128), nullable=False)
    question = db.Column(db.Text, nullable=False)
    transcript = db.Column(db.Text, nullable=False, default='')
    position = db.Column(db.Integer, nullable=False, default=0)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    interview_id = db.Column(db.String(64), db.ForeignKey('interview.id'), nullable=False)

    def to_dict(self):
        return {
            'question_id': self.question_id,
            'question': self.question,
            'transcript': self.transcript,
            'timestamp': self.timestamp.isoformat(),
        }

    def __repr__(self):
        return f'<Transcription {self.question_id} for Interview {self.interview_id}>'


class FeedbackSummary(db.Model):
    """All feedback items for an interview plus the overall assessment.

    Keyed by (interview_id, key); the app only ever writes key "summary",
    so an interview has at most one.
    """
    __table_args__ = (db.UniqueConstraint('interview_id', 'key'),)

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(32), nullable=False)
    items = db.Column(db.JSON, nullable=False, default=list)
    overall = db.Column(db.Text, nullable=False, default='')
    generated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    interview_id = db.Column(db.String(64), db.ForeignKey('interview.id'), nullable=False)

    def to_dict(self):
        return {
            'items': list(self.items or []),
            'overall': self.overall,
            'generated_at': self.generated_at.isoformat(),
        }

    def __repr__(self):
        return f'<FeedbackSummary {self.key} for Interview {self.interview_id}>'
