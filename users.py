"""
Users: registration, login, profile, admin management and OTP password reset.

Password hashing is explicit: create_user and update_password hash before
anything is written, and password hashes never leave this module.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import EmailStr
from pymongo.database import Database

from auth import Principal, create_token, get_current_user, hash_password, require_admin, verify_password
from config import Settings, get_settings
from database import create_document, get_db, parse_object_id, save_document, serialize_doc, utcnow
from errors import AuthError, InternalError, NotFoundError, ValidationError
from mailer import EmailSender, EmailSendError, get_mailer
from schemas import Address, CamelModel, User

logger = structlog.get_logger(__name__)

OTP_TTL = timedelta(minutes=10)

PUBLIC_FIELDS = ("name", "email", "is_admin", "billing_address", "shipping_address", "created_at", "updated_at")


def public_user(doc: dict) -> dict:
    out = serialize_doc({k: v for k, v in doc.items() if k == "_id" or k in PUBLIC_FIELDS})
    out.setdefault("is_admin", False)
    return out


# ----------------------- Service -----------------------
def create_user(db: Database, name: str, email: str, password: str, is_admin: bool = False) -> dict:
    if db["users"].find_one({"email": email}):
        raise ValidationError("User already exists")
    user = User(name=name, email=email, password_hash=hash_password(password), is_admin=is_admin)
    doc = create_document(db, "users", user)
    logger.info("user_registered", user_id=str(doc["_id"]))
    return doc


def authenticate(db: Database, email: str, password: str) -> dict:
    user = db["users"].find_one({"email": email})
    if not user or not verify_password(password, user.get("password_hash")):
        raise AuthError("Invalid email or password")
    return user


def update_password(db: Database, user: dict, new_password: str) -> dict:
    user["password_hash"] = hash_password(new_password)
    return save_document(db, "users", user)


def load_user(db: Database, user_id: str) -> dict:
    user = db["users"].find_one({"_id": parse_object_id(user_id, "User")})
    if not user:
        raise NotFoundError("User not found")
    return user


def update_profile(
    db: Database,
    user_id: str,
    name: Optional[str] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
    current_password: Optional[str] = None,
    billing_address: Optional[dict] = None,
    shipping_address: Optional[dict] = None,
) -> dict:
    user = load_user(db, user_id)

    if password:
        if not current_password or not verify_password(current_password, user.get("password_hash")):
            raise ValidationError("Current password is incorrect")
        user["password_hash"] = hash_password(password)

    if email and email != user["email"]:
        if db["users"].find_one({"email": email, "_id": {"$ne": user["_id"]}}):
            raise ValidationError("Email already in use")
        user["email"] = email
    user["name"] = name or user["name"]
    if billing_address:
        user["billing_address"] = billing_address
    if shipping_address:
        user["shipping_address"] = shipping_address

    return save_document(db, "users", user)


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def start_password_reset(db: Database, mailer: EmailSender, email: str) -> None:
    user = db["users"].find_one({"email": email})
    if not user:
        raise NotFoundError("User not found")

    otp = generate_otp()
    user["reset_password_otp"] = otp
    user["reset_password_otp_expires"] = utcnow() + OTP_TTL
    save_document(db, "users", user)

    body = (
        f"Your OTP for password reset is: {otp}\n\n"
        "This OTP will expire in 10 minutes.\n\n"
        "If you did not request this, please ignore this email."
    )
    html = (
        "<h2>Password Reset Request</h2>"
        "<p>You requested a password reset for your account. Here is your OTP:</p>"
        f"<p style=\"font-size: 24px; font-weight: bold; letter-spacing: 5px;\">{otp}</p>"
        "<p><strong>This OTP will expire in 10 minutes.</strong></p>"
        "<p>Best regards,<br/>The Aquarium Shop Team</p>"
    )
    try:
        mailer.send(to=email, subject="Password Reset OTP", body=body, html_body=html)
    except EmailSendError as exc:
        logger.error("otp_email_failed", user_id=str(user["_id"]), error=str(exc))
        raise InternalError("Failed to send OTP email. Please try again later.")
    logger.info("otp_sent", user_id=str(user["_id"]))


def complete_password_reset(db: Database, email: str, otp: str, new_password: str) -> None:
    user = db["users"].find_one({"email": email, "reset_password_otp": otp})
    expires = _as_utc(user.get("reset_password_otp_expires")) if user else None
    if not user or not otp or expires is None or expires <= utcnow():
        raise ValidationError("Invalid or expired OTP")

    user["reset_password_otp"] = None
    user["reset_password_otp_expires"] = None
    update_password(db, user, new_password)
    logger.info("password_reset", user_id=str(user["_id"]))


# ----------------------- Routes -----------------------
router = APIRouter(prefix="/api/users", tags=["users"])


class RegisterBody(CamelModel):
    name: str
    email: EmailStr
    password: str


class LoginBody(CamelModel):
    email: EmailStr
    password: str


class ProfileBody(CamelModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    current_password: Optional[str] = None
    billing_address: Optional[Address] = None
    shipping_address: Optional[Address] = None


class AdminFlagBody(CamelModel):
    is_admin: bool


class ForgotPasswordBody(CamelModel):
    email: Optional[str] = None


class VerifyOtpBody(CamelModel):
    email: str
    otp: str
    new_password: str


def _with_token(user: dict, settings: Settings) -> dict:
    out = public_user(user)
    out["token"] = create_token(out["id"], settings)
    return out


@router.post("", status_code=201)
def register(body: RegisterBody, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = create_user(db, body.name, body.email, body.password)
    return _with_token(user, settings)


@router.post("/login")
def login(body: LoginBody, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    return _with_token(authenticate(db, body.email, body.password), settings)


@router.get("/profile")
def get_profile(user: Principal = Depends(get_current_user), db: Database = Depends(get_db)):
    return public_user(load_user(db, user.id))


@router.put("/profile")
def put_profile(
    body: ProfileBody,
    user: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    updated = update_profile(
        db,
        user.id,
        name=body.name,
        email=body.email,
        password=body.password,
        current_password=body.current_password,
        billing_address=body.billing_address.model_dump() if body.billing_address else None,
        shipping_address=body.shipping_address.model_dump() if body.shipping_address else None,
    )
    return _with_token(updated, settings)


@router.get("")
def list_users(admin: Principal = Depends(require_admin), db: Database = Depends(get_db)):
    return [public_user(u) for u in db["users"].find({})]


@router.put("/{user_id}")
def set_admin_flag(
    user_id: str,
    body: AdminFlagBody,
    admin: Principal = Depends(require_admin),
    db: Database = Depends(get_db),
):
    user = load_user(db, user_id)
    user["is_admin"] = body.is_admin
    save_document(db, "users", user)
    logger.info("user_admin_flag_changed", user_id=user_id, is_admin=body.is_admin, by=admin.id)
    return public_user(user)


@router.post("/forgot-password")
def forgot_password(
    body: ForgotPasswordBody,
    db: Database = Depends(get_db),
    mailer: EmailSender = Depends(get_mailer),
):
    if not body.email or "@" not in body.email:
        raise ValidationError("Valid email is required")
    start_password_reset(db, mailer, body.email)
    return {"message": "OTP sent successfully to your email"}


@router.post("/verify-otp")
def verify_otp(body: VerifyOtpBody, db: Database = Depends(get_db)):
    complete_password_reset(db, body.email, body.otp, body.new_password)
    return {"message": "Password reset successfully"}
