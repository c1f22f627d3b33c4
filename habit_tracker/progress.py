import logging

from flask import request, jsonify
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from . import app, db
from .auth import token_required
from .config import today_str
from .db_state import store_error
from .errors import ConflictError, FutureDateError, NotFound, ValidationError, parse_id
from .models import MAX_INT, Habit, Progress
from .realtime import notify_user
from .validators import field_error, is_valid_date, validate_progress

logger = logging.getLogger(__name__)


def current_day():
    return today_str(app.config["APP_TIMEZONE"])


def _validated(data):
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    errors, cleaned = validate_progress(data)
    if errors:
        raise ValidationError.from_fields(errors)
    today = current_day()
    # Zero-padded ISO dates compare correctly as strings
    if cleaned["date"] > today:
        raise FutureDateError(
            f"Cannot create progress for future date: {cleaned['date']}. Today is {today}.",
            errors=[field_error("date", "Date cannot be in the future")],
        )
    return cleaned


def _owned_habit(user_id, habit_id):
    habit = Habit.query.filter_by(id=habit_id, user_id=user_id).first()
    if not habit:
        raise NotFound("Habit not found")
    return habit


def _find_progress(user_id, habit_id, day):
    return Progress.query.filter_by(user_id=user_id, habit_id=habit_id, date=day).first()


def _owned_progress(user_id, progress_id):
    progress = Progress.query.filter_by(id=progress_id, user_id=user_id).first()
    if not progress:
        raise NotFound("Progress not found")
    return progress


def upsert_progress(user_id, data):
    """Create or overwrite the single record for (user, habit, date).

    Returns (progress, created). A concurrent insert of the same key is
    resolved by updating the record that won the race.
    """
    cleaned = _validated(data)
    habit = _owned_habit(user_id, cleaned["habitId"])
    target = habit.target_value

    progress = _find_progress(user_id, habit.id, cleaned["date"])
    if progress:
        progress.apply_value(cleaned["value"], target)
        progress.notes = cleaned["notes"]
        db.session.commit()
        return progress, False

    progress = Progress(user_id=user_id, habit_id=habit.id, date=cleaned["date"], notes=cleaned["notes"])
    progress.apply_value(cleaned["value"], target)
    db.session.add(progress)
    try:
        db.session.commit()
        return progress, True
    except IntegrityError:
        db.session.rollback()
        logger.warning(
            f"Duplicate progress insert for user {user_id}, habit {habit.id}, date {cleaned['date']}; updating instead"
        )

    existing = _find_progress(user_id, habit.id, cleaned["date"])
    if not existing:
        raise ConflictError("Progress already exists for this habit and date. Please update instead of creating new.")
    existing.apply_value(cleaned["value"], target)
    existing.notes = cleaned["notes"]
    db.session.commit()
    return existing, False


def update_progress(user_id, progress_id, data):
    cleaned = _validated(data)
    habit = _owned_habit(user_id, cleaned["habitId"])
    clash = Progress.query.filter(
        Progress.id != progress_id,
        Progress.user_id == user_id,
        Progress.habit_id == habit.id,
        Progress.date == cleaned["date"],
    ).first()
    if clash:
        raise ConflictError("Progress already exists for this habit and date")

    progress = _owned_progress(user_id, progress_id)
    progress.habit_id = habit.id
    progress.date = cleaned["date"]
    progress.notes = cleaned["notes"]
    progress.apply_value(cleaned["value"], habit.target_value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Progress already exists for this habit and date")
    return progress


def toggle_completion(user_id, progress_id):
    # Manual override: bypasses value-vs-target derivation
    progress = _owned_progress(user_id, progress_id)
    progress.toggle_completed()
    db.session.commit()
    return progress


def delete_progress(user_id, progress_id):
    progress = _owned_progress(user_id, progress_id)
    db.session.delete(progress)
    db.session.commit()


def query_progress(user_id, habit_id=None, day=None, start_date=None, end_date=None, limit=None):
    query = Progress.query.filter(Progress.user_id == user_id)
    if habit_id is not None:
        query = query.filter(Progress.habit_id == habit_id)
    if day is not None:
        query = query.filter(Progress.date == day)
    if start_date is not None:
        query = query.filter(Progress.date >= start_date)
    if end_date is not None:
        query = query.filter(Progress.date <= end_date)
    query = query.order_by(Progress.date.desc(), Progress.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def cleanup_orphans(user_id=None):
    """Delete progress whose habit is gone or owned by a different user."""
    orphans = (
        Progress.query.outerjoin(Habit, Progress.habit_id == Habit.id)
        .filter(or_(Habit.id.is_(None), Habit.user_id != Progress.user_id))
    )
    if user_id is not None:
        orphans = orphans.filter(Progress.user_id == user_id)
    ids = [row.id for row in orphans.all()]
    if ids:
        Progress.query.filter(Progress.id.in_(ids)).delete(synchronize_session=False)
        db.session.commit()
    return len(ids)


def _date_arg(name):
    value = request.args.get(name)
    if value is None or value == "":
        return None
    if not is_valid_date(value):
        raise ValidationError(f"Invalid {name} format. Use YYYY-MM-DD")
    return value


def _limit_arg(default=30):
    raw = request.args.get("limit")
    if raw is None or raw == "":
        return default
    if not (raw.isascii() and raw.isdigit()) or not 1 <= int(raw) <= MAX_INT:
        raise ValidationError("Limit must be a positive integer")
    return int(raw)


@app.route("/api/progress", methods=["GET"])
@token_required
def get_progress(user):
    habit_id = request.args.get("habitId")
    habit_id = parse_id(habit_id, "habit") if habit_id else None
    try:
        records = query_progress(
            user.id,
            habit_id=habit_id,
            day=_date_arg("date"),
            start_date=_date_arg("startDate"),
            end_date=_date_arg("endDate"),
        )
    except SQLAlchemyError as e:
        return store_error(e, "Failed to fetch progress")
    logger.debug(f"Fetched {len(records)} progress records for user {user.username}")
    return jsonify([record.to_dict() for record in records]), 200


@app.route("/api/progress/date/<day>", methods=["GET"])
@token_required
def get_progress_for_date(user, day):
    if not is_valid_date(day):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD")
    try:
        records = query_progress(user.id, day=day)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to fetch progress for date")
    return jsonify([record.to_dict() for record in records]), 200


@app.route("/api/progress/habit/<habit_id>", methods=["GET"])
@token_required
def get_progress_for_habit(user, habit_id):
    habit_id = parse_id(habit_id, "habit")
    start_date = _date_arg("startDate")
    end_date = _date_arg("endDate")
    limit = _limit_arg()
    try:
        records = query_progress(user.id, habit_id=habit_id, start_date=start_date, end_date=end_date, limit=limit)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to fetch progress for habit")
    return jsonify([record.to_dict() for record in records]), 200


# Create or update progress
@app.route("/api/progress", methods=["POST"])
@token_required
def save_progress(user):
    data = request.get_json(silent=True)
    logger.debug(f"Save progress payload: {data}")
    try:
        progress, created = upsert_progress(user.id, data)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to save progress")
    payload = progress.to_dict()
    logger.info(
        f"Progress {'created' if created else 'updated'} for habit {progress.habit_id} "
        f"on {progress.date} by user {user.username}"
    )
    notify_user(user.id, "progressUpdated", payload)
    if created:
        return jsonify({"message": "Progress created successfully", "progress": payload}), 201
    return jsonify({"message": "Progress updated successfully", "progress": payload}), 200


@app.route("/api/progress/<progress_id>", methods=["PUT"])
@token_required
def update_progress_route(user, progress_id):
    progress_id = parse_id(progress_id, "progress")
    data = request.get_json(silent=True)
    try:
        progress = update_progress(user.id, progress_id, data)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to update progress")
    logger.info(f"Progress {progress_id} updated by user {user.username}")
    payload = progress.to_dict()
    notify_user(user.id, "progressUpdated", payload)
    return jsonify({"message": "Progress updated successfully", "progress": payload}), 200


@app.route("/api/progress/<progress_id>", methods=["DELETE"])
@token_required
def delete_progress_route(user, progress_id):
    progress_id = parse_id(progress_id, "progress")
    try:
        delete_progress(user.id, progress_id)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to delete progress")
    logger.info(f"Progress {progress_id} deleted by user {user.username}")
    notify_user(user.id, "progressDeleted", {"id": progress_id})
    return jsonify({"message": "Progress deleted successfully"}), 200


@app.route("/api/progress/<progress_id>/toggle-completion", methods=["PATCH"])
@token_required
def toggle_completion_route(user, progress_id):
    progress_id = parse_id(progress_id, "progress")
    try:
        progress = toggle_completion(user.id, progress_id)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to toggle completion status")
    state = "marked as completed" if progress.completed else "marked as incomplete"
    payload = progress.to_dict()
    notify_user(user.id, "progressUpdated", payload)
    return jsonify({"message": f"Progress {state}", "progress": payload}), 200


@app.route("/api/progress/cleanup", methods=["POST"])
@token_required
def cleanup_progress(user):
    try:
        cleaned = cleanup_orphans(user.id)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to cleanup progress data")
    if cleaned:
        logger.info(f"Cleaned up {cleaned} orphaned progress entries for user {user.id}")
        return jsonify({"message": f"Cleaned up {cleaned} orphaned progress entries", "cleanedCount": cleaned}), 200
    return jsonify({"message": "No orphaned progress entries found", "cleanedCount": 0}), 200
