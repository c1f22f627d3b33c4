import logging
from datetime import datetime

from flask import request, jsonify
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from . import app, db
from .auth import token_required
from .db_state import store_error
from .errors import NotFound, ValidationError, parse_id
from .models import Habit
from .realtime import notify_user
from .validators import validate_habit

logger = logging.getLogger(__name__)

SCALAR_FIELDS = {
    "name": "name",
    "description": "description",
    "category": "category",
    "frequency": "frequency",
    "targetValue": "target_value",
    "unit": "unit",
    "color": "color",
}
REMINDER_FIELDS = {
    "enabled": "reminder_enabled",
    "startTime": "reminder_start_time",
    "endTime": "reminder_end_time",
    "frequency": "reminder_frequency",
    "message": "reminder_message",
}


def _apply_fields(habit, cleaned):
    for key, attr in SCALAR_FIELDS.items():
        if key in cleaned:
            setattr(habit, attr, cleaned[key])
    for key, attr in REMINDER_FIELDS.items():
        if key in cleaned.get("reminder", {}):
            setattr(habit, attr, cleaned["reminder"][key])


def _validated(data, partial):
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    errors, cleaned = validate_habit(data, partial=partial)
    if errors:
        raise ValidationError.from_fields(errors)
    return cleaned


def list_habits(user_id):
    return Habit.query.filter_by(user_id=user_id).order_by(Habit.created_at.desc(), Habit.id.desc()).all()


def get_habit(user_id, habit_id):
    habit = Habit.query.filter_by(id=habit_id, user_id=user_id).first()
    if not habit:
        raise NotFound("Habit not found")
    return habit


def create_habit(user_id, data):
    cleaned = _validated(data, partial=False)
    now = datetime.utcnow()
    habit = Habit(user_id=user_id, is_active=True, start_date=now)
    _apply_fields(habit, cleaned)
    db.session.add(habit)
    db.session.commit()
    return habit


def update_habit(user_id, habit_id, data):
    cleaned = _validated(data, partial=True)
    habit = get_habit(user_id, habit_id)
    _apply_fields(habit, cleaned)
    db.session.commit()
    return habit


def delete_habit(user_id, habit_id):
    habit = get_habit(user_id, habit_id)
    # Progress rows go with the habit through the relationship cascade
    db.session.delete(habit)
    db.session.commit()


def toggle_habit(user_id, habit_id):
    habit = get_habit(user_id, habit_id)
    habit.is_active = not habit.is_active
    db.session.commit()
    return habit


def habit_stats(user_id):
    total = Habit.query.filter_by(user_id=user_id).count()
    active = Habit.query.filter_by(user_id=user_id, is_active=True).count()
    rows = (
        db.session.query(Habit.category, func.count(Habit.id))
        .filter(Habit.user_id == user_id)
        .group_by(Habit.category)
        .order_by(func.count(Habit.id).desc(), Habit.category)
        .all()
    )
    return {
        "totalHabits": total,
        "activeHabits": active,
        "inactiveHabits": total - active,
        "categoryStats": [{"category": category, "count": count} for category, count in rows],
    }


@app.route("/api/habits", methods=["GET"])
@token_required
def get_habits(user):
    try:
        habits = list_habits(user.id)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to fetch habits")
    logger.debug(f"Fetched {len(habits)} habits for user {user.username}")
    return jsonify([habit.to_dict() for habit in habits]), 200


@app.route("/api/habits/<habit_id>", methods=["GET"])
@token_required
def get_habit_route(user, habit_id):
    habit_id = parse_id(habit_id, "habit")
    try:
        habit = get_habit(user.id, habit_id)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to fetch habit")
    return jsonify(habit.to_dict()), 200


@app.route("/api/habits", methods=["POST"])
@token_required
def create_habit_route(user):
    data = request.get_json(silent=True)
    logger.debug(f"Create habit payload: {data}")
    try:
        habit = create_habit(user.id, data)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to create habit")
    logger.info(f"Habit created: {habit.name} for user {user.username}")
    payload = habit.to_dict()
    notify_user(user.id, "habitCreated", payload)
    return jsonify({"message": "Habit created successfully", "habit": payload}), 201


@app.route("/api/habits/<habit_id>", methods=["PUT"])
@token_required
def update_habit_route(user, habit_id):
    habit_id = parse_id(habit_id, "habit")
    data = request.get_json(silent=True)
    logger.debug(f"Update habit {habit_id} payload: {data}")
    try:
        habit = update_habit(user.id, habit_id, data)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to update habit")
    logger.info(f"Habit {habit_id} updated for user {user.username}")
    payload = habit.to_dict()
    notify_user(user.id, "habitUpdated", payload)
    return jsonify({"message": "Habit updated successfully", "habit": payload}), 200


@app.route("/api/habits/<habit_id>", methods=["DELETE"])
@token_required
def delete_habit_route(user, habit_id):
    habit_id = parse_id(habit_id, "habit")
    try:
        delete_habit(user.id, habit_id)
    except SQLAlchemyError as e:
        return store_error(e, f"Failed to delete habit {habit_id}")
    logger.info(f"Habit {habit_id} deleted successfully by user {user.id}")
    notify_user(user.id, "habitDeleted", {"id": habit_id})
    return jsonify({"message": "Habit deleted successfully"}), 200


@app.route("/api/habits/<habit_id>/toggle-status", methods=["PATCH"])
@token_required
def toggle_habit_route(user, habit_id):
    habit_id = parse_id(habit_id, "habit")
    try:
        habit = toggle_habit(user.id, habit_id)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to toggle habit status")
    state = "activated" if habit.is_active else "deactivated"
    logger.info(f"Habit {habit_id} {state} for user {user.username}")
    payload = habit.to_dict()
    notify_user(user.id, "habitUpdated", payload)
    return jsonify({"message": f"Habit {state} successfully", "habit": payload}), 200


@app.route("/api/habits/stats/overview", methods=["GET"])
@token_required
def habit_stats_route(user):
    try:
        stats = habit_stats(user.id)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to fetch habit statistics")
    return jsonify(stats), 200
