import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

import bcrypt
import jwt
from flask import request, jsonify
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from . import app, db
from .db_state import store_error
from .errors import AuthError, ConflictError, ValidationError
from .models import User
from .validators import field_error, normalize_email, validate_registration

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


def hash_password(password):
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password, hashed):
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Generate JWT
def generate_token(user_id):
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": user_id,
        "exp": now + timedelta(days=app.config["JWT_EXPIRY_DAYS"]),
        "iat": now,
    }
    return jwt.encode(payload, app.config["JWT_SECRET_KEY"], algorithm=app.config["JWT_ALGORITHM"])


def verify_token(token):
    """Return the user id asserted by a bearer token."""
    if not token:
        raise AuthError("Token required")
    try:
        payload = jwt.decode(token, app.config["JWT_SECRET_KEY"], algorithms=[app.config["JWT_ALGORITHM"]])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")
    user_id = payload.get("user_id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise AuthError("Invalid token")
    return user_id


# JWT middleware
def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        token = header[7:].strip() if header.startswith("Bearer ") else None
        if not token:
            logger.error("Token missing in request")
            raise AuthError("Token required")
        try:
            user_id = verify_token(token)
        except AuthError as e:
            logger.error(f"Rejected token: {e.message}")
            raise
        user = db.session.get(User, user_id)
        if not user:
            logger.error("User not found for token")
            raise AuthError("Invalid token")
        return f(user, *args, **kwargs)
    return decorated


def _auth_response(user, message, status):
    return jsonify({
        "message": message,
        "token": generate_token(user.id),
        "user": user.to_public_dict(),
    }), status


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# Register endpoint
@app.route("/api/auth/register", methods=["POST"])
def register():
    data = _json_body()
    errors, fields = validate_registration(data)
    if errors:
        raise ValidationError.from_fields(errors)

    existing = User.query.filter(
        (User.username == fields["username"]) | (User.email == fields["email"])
    ).first()
    if existing:
        if existing.email == fields["email"]:
            raise ConflictError("Email already registered", status_code=400)
        raise ConflictError("Username already taken", status_code=400)

    new_user = User(
        username=fields["username"],
        email=fields["email"],
        password=hash_password(fields["password"]),
    )
    try:
        db.session.add(new_user)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        logger.warning(f"Registration raced on unique username/email: {str(e)}")
        raise ConflictError("Username or email already exists", status_code=400)
    except SQLAlchemyError as e:
        return store_error(e, "Failed to register user")
    logger.info(f"User registered: {new_user.username}")
    return _auth_response(new_user, "User registered successfully", 201)


# Login endpoint
@app.route("/api/auth/login", methods=["POST"])
def login():
    data = _json_body()
    identifier = data.get("identifier")  # Can be username or email
    password = data.get("password")
    errors = []
    if not isinstance(identifier, str) or not identifier.strip():
        errors.append(field_error("identifier", "Email or username is required"))
    if not isinstance(password, str) or not password:
        errors.append(field_error("password", "Password is required"))
    if errors:
        raise ValidationError.from_fields(errors)

    identifier = identifier.strip()
    user = User.query.filter(
        (User.username == identifier) | (User.email == normalize_email(identifier))
    ).first()
    # Same answer for unknown user and wrong password
    if not user or not verify_password(password, user.password):
        logger.info("Login failed for supplied identifier")
        raise AuthError(INVALID_CREDENTIALS, status_code=400)
    logger.info(f"Login successful for user {user.username}")
    return _auth_response(user, "Login successful", 200)


@app.route("/api/auth/me", methods=["GET"])
@token_required
def me(user):
    return jsonify({"user": user.to_public_dict()}), 200
