# gymmini/routes/auth.py
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from pymongo.database import Database

from gymmini import settings
from gymmini.auth import authenticate_user, get_current_user, hash_password, issue_token
from gymmini.db import OTPS, USERS, get_db
from gymmini.db.identities import get_identity_by_email
from gymmini.errors import DependencyError
from gymmini.schemas.projections import normalize_email
from gymmini.schemas.requests import ForgotPasswordRequest, RegisterRequest, ResetPasswordRequest, VerifyOtpRequest
from gymmini.services import access, notify, reconciler
from gymmini.services.billing import as_utc
from gymmini.utils.logger import get_logger, log_activity

router = APIRouter(prefix="/auth", tags=["auth"])
logger = get_logger(__name__)


def _user_payload(user: dict) -> dict:
    return {"id": str(user["_id"]), "name": user.get("name"), "email": user.get("email"), "role": user.get("role")}


# ---------- Register ----------
@router.post("/register", status_code=201)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    if payload.password != payload.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")

    reconciler.create_with_projection(
        db,
        {
            "name": payload.name,
            "email": payload.email,
            "password": payload.password,
            "role": payload.role,
            "phone": payload.phone,
            "gender": payload.gender,
        },
        send_credentials=False,
    )
    user = get_identity_by_email(db, payload.email)
    return {
        "message": "User registered successfully",
        "token": issue_token(user),
        "user": _user_payload(user),
    }


# ---------- Email/Password Login ----------
@router.post("/token")
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Database = Depends(get_db)):
    user = authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    access_token = issue_token(user)
    log_activity(db, user["_id"], "login_password", {})

    resp = JSONResponse({
        "access_token": access_token,
        "token_type": "bearer",
        "user": _user_payload(user),
    })
    resp.set_cookie(key="token", value=access_token, httponly=True, samesite="lax")
    return resp


@router.get("/me")
def me(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return access.get_profile(db, current_user)


# ---------- Forgot Password (OTP) ----------
@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, db: Database = Depends(get_db)):
    email = normalize_email(payload.email)
    if not get_identity_by_email(db, email):
        raise HTTPException(status_code=404, detail="No account found with this email")

    otp = f"{secrets.randbelow(900000) + 100000}"
    db[OTPS].delete_many({"email": email})
    db[OTPS].insert_one({
        "email": email,
        "otp": otp,
        "verified": False,
        "expires_at": datetime.now(timezone.utc) + timedelta(minutes=settings.OTP_EXPIRE_MIN),
    })
    try:
        notify.send_otp(email, otp)
    except DependencyError as exc:
        logger.warning("otp email failed for %s: %s", email, exc.message)
    return {"message": "OTP sent to your email. Please check your inbox."}


def _live_otp(db: Database, email: str, otp: str, verified_only: bool = False) -> dict:
    query = {"email": email, "otp": otp}
    if verified_only:
        query["verified"] = True
    record = db[OTPS].find_one(query)
    if not record:
        raise HTTPException(status_code=400, detail="Invalid OTP")
    if datetime.now(timezone.utc) > as_utc(record["expires_at"]):
        db[OTPS].delete_one({"_id": record["_id"]})
        raise HTTPException(status_code=400, detail="OTP has expired. Please request a new one.")
    return record


@router.post("/verify-otp")
def verify_otp(payload: VerifyOtpRequest, db: Database = Depends(get_db)):
    record = _live_otp(db, normalize_email(payload.email), payload.otp)
    db[OTPS].update_one({"_id": record["_id"]}, {"$set": {"verified": True}})
    return {"message": "OTP verified successfully. You can now reset your password."}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Database = Depends(get_db)):
    if payload.new_password != payload.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")
    email = normalize_email(payload.email)
    record = _live_otp(db, email, payload.otp, verified_only=True)

    result = db[USERS].update_one({"email": email}, {"$set": {"password": hash_password(payload.new_password)}})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    db[OTPS].delete_one({"_id": record["_id"]})
    log_activity(db, email, "reset_password", {})
    return {"message": "Password reset successfully. You can now login with your new password."}
