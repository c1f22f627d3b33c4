import math
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

CATEGORIES = ("health", "fitness", "learning", "productivity", "mindfulness", "social", "other", "general")
FREQUENCIES = ("daily", "weekly", "monthly")
REMINDER_FREQUENCIES = ("once", "hourly", "every-2-hours", "every-4-hours")

# Largest value the Integer columns hold
MAX_INT = 2**31 - 1


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(30), unique=True, nullable=False)
    email = db.Column(db.String(254), unique=True, nullable=False)
    password = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    habits = db.relationship("Habit", backref="user", lazy=True, cascade="all, delete-orphan")
    progress = db.relationship("Progress", backref="user", lazy=True, cascade="all, delete-orphan")

    def to_public_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "createdAt": _iso(self.created_at),
        }


class Habit(db.Model):
    __tablename__ = "habits"
    __table_args__ = (
        db.Index("ix_habits_user_created", "user_id", "created_at"),
        db.Index("ix_habits_user_category", "user_id", "category"),
        db.Index("ix_habits_user_active", "user_id", "is_active"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=False, default="")
    category = db.Column(db.String(20), nullable=False, default="general")
    frequency = db.Column(db.String(10), nullable=False, default="daily")
    target_value = db.Column(db.Integer, nullable=False, default=1)
    unit = db.Column(db.String(20), nullable=False, default="")
    color = db.Column(db.String(7), nullable=False, default="#3B82F6")
    reminder_enabled = db.Column(db.Boolean, nullable=False, default=False)
    reminder_start_time = db.Column(db.String(5), nullable=False, default="09:00")
    reminder_end_time = db.Column(db.String(5), nullable=False, default="21:00")
    reminder_frequency = db.Column(db.String(20), nullable=False, default="once")
    reminder_message = db.Column(db.String(200), nullable=False, default="Time to work on your habit!")
    start_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    progress = db.relationship("Progress", backref="habit", lazy=True, cascade="all, delete-orphan")

    @property
    def duration(self):
        # Whole days since the habit started, rounded up
        if not self.start_date:
            return 0
        seconds = abs((datetime.utcnow() - self.start_date).total_seconds())
        return math.ceil(seconds / 86400)

    def summary(self):
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "color": self.color,
            "targetValue": self.target_value,
            "unit": self.unit,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "user": self.user_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "frequency": self.frequency,
            "targetValue": self.target_value,
            "unit": self.unit,
            "color": self.color,
            "reminder": {
                "enabled": self.reminder_enabled,
                "startTime": self.reminder_start_time,
                "endTime": self.reminder_end_time,
                "frequency": self.reminder_frequency,
                "message": self.reminder_message,
            },
            "startDate": _iso(self.start_date),
            "isActive": self.is_active,
            "duration": self.duration,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class Progress(db.Model):
    __tablename__ = "progress"
    __table_args__ = (
        db.UniqueConstraint("user_id", "habit_id", "date", name="uq_progress_user_habit_date"),
        db.Index("ix_progress_user_date", "user_id", "date"),
        db.Index("ix_progress_user_habit", "user_id", "habit_id"),
        db.Index("ix_progress_user_completed", "user_id", "completed"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    habit_id = db.Column(db.Integer, db.ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    date = db.Column(db.String(10), nullable=False)  # YYYY-MM-DD
    value = db.Column(db.Float, nullable=False, default=0)
    notes = db.Column(db.String(500), nullable=False, default="")
    completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def apply_value(self, value, target_value):
        """Store a logged value and re-derive completion against the habit target."""
        self.value = value
        self.completed = value >= target_value
        self.completed_at = datetime.utcnow() if self.completed else None

    def toggle_completed(self):
        self.completed = not self.completed
        self.completed_at = datetime.utcnow() if self.completed else None

    def meets_target(self, target_value):
        return self.value >= target_value

    def status(self, target_value):
        if self.meets_target(target_value):
            return "completed"
        if self.value > 0:
            return "partial"
        return "not-started"

    def to_dict(self):
        habit = self.habit
        return {
            "id": self.id,
            "user": self.user_id,
            "habitId": self.habit_id,
            "habit": habit.summary() if habit else None,
            "date": self.date,
            "value": self.value,
            "notes": self.notes,
            "completed": self.completed,
            "completedAt": _iso(self.completed_at),
            "status": self.status(habit.target_value) if habit else None,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
