import logging
from datetime import date, timedelta

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError

from . import app
from .auth import token_required
from .db_state import store_error
from .models import Habit, Progress
from .progress import current_day

logger = logging.getLogger(__name__)

TREND_DAYS = 30


def _days_back(today, days):
    return (date.fromisoformat(today) - timedelta(days=days)).isoformat()


def _rate(completed, active_habits, days):
    if active_habits <= 0:
        return 0
    return round(completed / (active_habits * days) * 100)


def progress_stats(user_id, today=None):
    today = today or current_day()
    week_start = _days_back(today, 6)
    month_start = _days_back(today, 29)
    done = Progress.query.filter_by(user_id=user_id, completed=True)

    today_completed = done.filter(Progress.date == today).count()
    week_completed = done.filter(Progress.date >= week_start, Progress.date <= today).count()
    month_completed = done.filter(Progress.date >= month_start, Progress.date <= today).count()
    total_completed = done.count()
    active_habits = Habit.query.filter_by(user_id=user_id, is_active=True).count()

    return {
        "todayCompleted": today_completed,
        "weekCompleted": week_completed,
        "monthCompleted": month_completed,
        "totalCompleted": total_completed,
        "totalHabits": active_habits,
        "todayCompletionRate": _rate(today_completed, active_habits, 1),
        "weekCompletionRate": _rate(week_completed, active_habits, 7),
        "monthCompletionRate": _rate(month_completed, active_habits, 30),
    }


def calculate_streak(completed_dates, today):
    """Count consecutive completed days ending today, or yesterday if today is still open."""
    if not completed_dates:
        return 0
    day = date.fromisoformat(today)
    if day.isoformat() not in completed_dates:
        day -= timedelta(days=1)
    streak = 0
    while day.isoformat() in completed_dates:
        streak += 1
        day -= timedelta(days=1)
    return streak


def progress_trends(user_id, today=None):
    today = today or current_day()
    start = date.fromisoformat(today) - timedelta(days=TREND_DAYS - 1)
    labels = [(start + timedelta(days=i)).isoformat() for i in range(TREND_DAYS)]
    index = {label: i for i, label in enumerate(labels)}

    habits = Habit.query.filter_by(user_id=user_id).order_by(Habit.created_at.desc(), Habit.id.desc()).all()
    rows = (
        Progress.query.with_entities(Progress.habit_id, Progress.date)
        .filter(Progress.user_id == user_id, Progress.completed.is_(True))
        .all()
    )
    completed_by_habit = {}
    for habit_id, day in rows:
        completed_by_habit.setdefault(habit_id, set()).add(day)

    habit_data = []
    trend_data = {}
    for habit in habits:
        dates = completed_by_habit.get(habit.id, set())
        series = [0] * TREND_DAYS
        for day in dates:
            if day in index:
                series[index[day]] = 1
        in_window = sum(series)
        trend_data[str(habit.id)] = series
        habit_data.append({
            "id": habit.id,
            "name": habit.name,
            "frequency": habit.frequency,
            "totalCompleted": len(dates),
            "completionRate": round(in_window / TREND_DAYS * 100),
            "currentStreak": calculate_streak(dates, today),
        })

    return {"habits": habit_data, "trends": {"labels": labels, "data": trend_data}}


@app.route("/api/progress/stats/overview", methods=["GET"])
@token_required
def progress_stats_route(user):
    try:
        stats = progress_stats(user.id)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to fetch progress statistics")
    return jsonify(stats), 200


# Analysis endpoint
@app.route("/api/progress/stats/trends", methods=["GET"])
@token_required
def progress_trends_route(user):
    try:
        trends = progress_trends(user.id)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to fetch progress trends")
    logger.debug(f"Trends fetched for user {user.username}: {len(trends['habits'])} habits")
    return jsonify(trends), 200
