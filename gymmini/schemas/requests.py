from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Gender = Literal["Male", "Female", "Others"]
ClassType = Literal["Cardio", "Strength", "Yoga", "Flexibility", "HIIT", "Other"]
Difficulty = Literal["Beginner", "Intermediate", "Advanced"]
MemberStatus = Literal["active", "inactive", "Deactive", "pending"]
StaffRole = Literal["Trainer", "Reception", "Manager", "Cleaner"]
SalaryType = Literal["Monthly", "Per-class", "Per-hour"]
StaffStatus = Literal["Active", "On Permission", "Resigned"]
SessionStatus = Literal["Scheduled", "Cancelled", "Completed"]
TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6, max_length=72)
    confirm_password: str
    role: Literal["admin", "trainer", "member"] = "member"
    phone: Optional[str] = None
    gender: Optional[Gender] = None


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    otp: str


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    otp: str
    new_password: str = Field(min_length=6, max_length=72)
    confirm_password: str


class MemberCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    gender: Optional[Gender] = None
    age: Optional[int] = Field(default=None, ge=1, le=150)
    weight: Optional[float] = Field(default=None, ge=1, le=1000)
    membership_start_date: datetime
    membership_end_date: datetime
    plan: str = Field(min_length=1)
    class_name: Optional[str] = None
    class_type: Optional[ClassType] = None
    difficulty_level: Optional[Difficulty] = None
    status: Optional[MemberStatus] = None
    next_billing_date: Optional[datetime] = None


class MemberUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    gender: Optional[Gender] = None
    age: Optional[int] = Field(default=None, ge=1, le=150)
    weight: Optional[float] = Field(default=None, ge=1, le=1000)
    membership_start_date: Optional[datetime] = None
    membership_end_date: Optional[datetime] = None
    plan: Optional[str] = None
    class_name: Optional[str] = None
    class_type: Optional[ClassType] = None
    difficulty_level: Optional[Difficulty] = None
    status: Optional[MemberStatus] = None
    next_billing_date: Optional[datetime] = None


class TrainerCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    gender: Optional[Gender] = None
    specialization: Optional[str] = None
    bio: Optional[str] = None
    experience: Optional[str] = None


class TrainerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    gender: Optional[Gender] = None
    specialization: Optional[str] = None
    bio: Optional[str] = None
    experience: Optional[str] = None


class StaffCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    role: StaffRole
    gender: Gender
    salary_type: SalaryType
    base_salary: float = Field(ge=0)
    status: Optional[StaffStatus] = None
    joining_date: Optional[datetime] = None
    specialization: Optional[str] = None
    bio: Optional[str] = None
    experience: Optional[str] = None


class StaffUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    gender: Optional[Gender] = None
    salary_type: Optional[SalaryType] = None
    base_salary: Optional[float] = Field(default=None, ge=0)
    status: Optional[StaffStatus] = None
    joining_date: Optional[datetime] = None
    specialization: Optional[str] = None
    bio: Optional[str] = None
    experience: Optional[str] = None


class SessionCreate(BaseModel):
    name: str = Field(min_length=1)
    trainer_id: str = Field(min_length=1)
    date: datetime
    start_time: str = Field(pattern=TIME_PATTERN)
    capacity: int = Field(ge=1)
    location: str = Field(min_length=1)
    starting_date: Optional[datetime] = None


class SessionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    trainer_id: Optional[str] = None
    date: Optional[datetime] = None
    start_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    capacity: Optional[int] = Field(default=None, ge=1)
    location: Optional[str] = Field(default=None, min_length=1)
    starting_date: Optional[datetime] = None
    status: Optional[SessionStatus] = None


class AttendanceMark(BaseModel):
    session_id: str = Field(min_length=1)
    member_id: str = Field(min_length=1)
    is_present: bool = True
