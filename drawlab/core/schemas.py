"""
Request/response models for the JSON endpoints.

Each action of the student-auth and admin endpoints has its own model; the
``action`` field discriminates between them.
"""
import re
import datetime as dt
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .exceptions import RequestValidationError

VALID_BRANCHES = ('computer_engineering', 'cst', 'data_science', 'ai', 'ece')
DRAWING_TYPES = ('orthographic', 'isometric', 'sectional')
CONTENT_TYPES = ('pyq', 'video', 'object', 'reference')

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
USERNAME_RE = re.compile(r'^[a-zA-Z0-9_]{3,20}$')

MIN_STUDENT_PASSWORD = 6
MIN_ADMIN_PASSWORD = 4
MAX_ERRORS = 5


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore', str_strip_whitespace=True)


class CredentialModel(ApiModel):
    """Carries a password; string fields are kept exactly as sent"""
    model_config = ConfigDict(str_strip_whitespace=False)


def parse_roll_no(value):
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValueError('Roll number must be a positive integer')
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError('Roll number must be a positive integer')
    if number <= 0 or not number.is_integer():
        raise ValueError('Roll number must be a positive integer')
    return int(number)


# ============================================
# Student auth actions
# ============================================

class RegisterRequest(CredentialModel):
    action: Literal['register']
    email: str
    password: str
    branch: str
    username: Optional[str] = None
    roll_no: Optional[int] = Field(None, alias='rollNo')

    @field_validator('email')
    @classmethod
    def _email_shape(cls, v):
        v = v.strip()
        if not EMAIL_RE.match(v):
            raise ValueError('Invalid email format')
        return v.lower()

    @field_validator('password')
    @classmethod
    def _password_length(cls, v):
        if len(v) < MIN_STUDENT_PASSWORD:
            raise ValueError(f'Password must be at least {MIN_STUDENT_PASSWORD} characters')
        return v

    @field_validator('branch')
    @classmethod
    def _known_branch(cls, v):
        v = v.strip()
        if v not in VALID_BRANCHES:
            raise ValueError('Invalid branch selected')
        return v

    @field_validator('username')
    @classmethod
    def _username_shape(cls, v):
        v = v.strip() if v else v
        if v in (None, ''):
            return None
        if not USERNAME_RE.match(v):
            raise ValueError('Username must be 3-20 characters (letters, numbers, underscore only)')
        return v.lower()

    @field_validator('roll_no', mode='before')
    @classmethod
    def _roll_no(cls, v):
        return parse_roll_no(v)


class LoginRequest(CredentialModel):
    action: Literal['login']
    password: str
    email: Optional[str] = None
    username: Optional[str] = None

    @field_validator('email', 'username')
    @classmethod
    def _strip_identifier(cls, v):
        return v.strip() if v else v


class TokenRequest(ApiModel):
    session_token: Optional[str] = Field(None, alias='sessionToken')


class VerifyRequest(TokenRequest):
    action: Literal['verify']


class LogoutRequest(TokenRequest):
    action: Literal['logout']


class RequestResetRequest(ApiModel):
    action: Literal['request_reset']
    email: str


class ResetPasswordRequest(CredentialModel):
    action: Literal['reset_password']
    reset_token: str = Field(alias='resetToken')
    new_password: str = Field(alias='newPassword')

    @field_validator('reset_token')
    @classmethod
    def _strip_token(cls, v):
        return v.strip()

    @field_validator('new_password')
    @classmethod
    def _password_length(cls, v):
        if len(v) < MIN_STUDENT_PASSWORD:
            raise ValueError(f'Password must be at least {MIN_STUDENT_PASSWORD} characters')
        return v


class ProfileUpdate(ApiModel):
    full_name: Optional[str] = Field(None, alias='fullName')
    avatar_url: Optional[str] = Field(None, alias='avatarUrl')
    interests: Optional[str] = None
    goals: Optional[str] = None
    extra_info: Optional[str] = Field(None, alias='extraInfo')
    branch: Optional[str] = None
    roll_no: Any = Field(None, alias='rollNo')


class UpdateProfileRequest(TokenRequest):
    action: Literal['update_profile']
    profile: ProfileUpdate = Field(default_factory=ProfileUpdate)


class GetProfileRequest(TokenRequest):
    action: Literal['get_profile']


class AddPointsRequest(TokenRequest):
    action: Literal['add_points']
    score: float


class GetLoggedInStudentsRequest(ApiModel):
    action: Literal['get_logged_in_students']
    admin_token: Optional[str] = Field(None, alias='adminToken')


class GetAttendanceRequest(TokenRequest):
    action: Literal['get_attendance']


StudentAuthRequest = Annotated[
    Union[
        RegisterRequest, LoginRequest, VerifyRequest, LogoutRequest,
        RequestResetRequest, ResetPasswordRequest, UpdateProfileRequest,
        GetProfileRequest, AddPointsRequest, GetLoggedInStudentsRequest,
        GetAttendanceRequest,
    ],
    Field(discriminator='action'),
]

# ============================================
# Admin actions
# ============================================

class AdminEnvelope(ApiModel):
    """Just enough of an admin request to authorise it before full parsing"""
    action: Optional[str] = None
    admin_token: Optional[str] = Field(None, alias='adminToken')


class AdminLoginRequest(CredentialModel):
    action: Literal['login']
    password: str = ''


class AdminVerifyRequest(ApiModel):
    action: Literal['verify']


class AdminLogoutRequest(ApiModel):
    action: Literal['logout']
    admin_token: str = Field(alias='adminToken')


class AdminResetPasswordRequest(CredentialModel):
    action: Literal['reset_password']
    new_password: str = Field(alias='newPassword')

    @field_validator('new_password')
    @classmethod
    def _password_length(cls, v):
        if len(v) < MIN_ADMIN_PASSWORD:
            raise ValueError(f'New password must be at least {MIN_ADMIN_PASSWORD} characters')
        return v


class BranchRequest(ApiModel):
    branch: str


class StudentsByBranchRequest(BranchRequest):
    action: Literal['get_students_by_branch']


class LoggedInStudentsByBranchRequest(BranchRequest):
    action: Literal['get_logged_in_students_by_branch']


class AttendanceByMonthRequest(BranchRequest):
    action: Literal['get_attendance_by_branch_month']
    month_start: dt.date = Field(alias='monthStart')
    month_end: dt.date = Field(alias='monthEnd')


class AttendanceMarkBase(BranchRequest):
    date: dt.date
    student_email: str = Field(alias='studentEmail')

    @field_validator('student_email')
    @classmethod
    def _lower(cls, v):
        return v.lower()


class MarkAttendanceRequest(AttendanceMarkBase):
    action: Literal['mark_attendance']


class UnmarkAttendanceRequest(AttendanceMarkBase):
    action: Literal['unmark_attendance']


class StudentEmailRequest(ApiModel):
    student_email: str = Field(alias='studentEmail')

    @field_validator('student_email')
    @classmethod
    def _lower(cls, v):
        return v.lower()


class RemoveStudentSessionRequest(StudentEmailRequest):
    action: Literal['remove_student_session']


class UnlockStudentRequest(StudentEmailRequest):
    action: Literal['unlock_student']


class GetLockedStudentsRequest(ApiModel):
    action: Literal['get_locked_students']


class ContentItem(ApiModel):
    semester: int = Field(ge=1)
    drawing_type: str
    content_type: str
    title: str = Field(min_length=1)
    file_url: Optional[str] = None

    @field_validator('drawing_type')
    @classmethod
    def _drawing_type(cls, v):
        if v not in DRAWING_TYPES:
            raise ValueError(f"drawing_type must be one of {', '.join(DRAWING_TYPES)}")
        return v

    @field_validator('content_type')
    @classmethod
    def _content_type(cls, v):
        if v not in CONTENT_TYPES:
            raise ValueError(f"content_type must be one of {', '.join(CONTENT_TYPES)}")
        return v


class InsertContentRequest(ApiModel):
    action: Literal['insert_content']
    content_item: ContentItem = Field(alias='contentItem')


class DeleteContentRequest(ApiModel):
    action: Literal['delete_content']
    content_id: int = Field(alias='contentId')


AdminRequest = Annotated[
    Union[
        AdminLoginRequest, AdminVerifyRequest, AdminLogoutRequest,
        AdminResetPasswordRequest, StudentsByBranchRequest,
        LoggedInStudentsByBranchRequest, AttendanceByMonthRequest,
        MarkAttendanceRequest, UnmarkAttendanceRequest,
        RemoveStudentSessionRequest, UnlockStudentRequest,
        GetLockedStudentsRequest, InsertContentRequest, DeleteContentRequest,
    ],
    Field(discriminator='action'),
]

# ============================================
# Evaluation / history
# ============================================

class EvaluationRequest(ApiModel):
    user_drawing: str = Field(alias='userDrawing', min_length=1)
    reference_image: str = Field(alias='referenceImage', min_length=1)
    drawing_type: str = Field(alias='drawingType', min_length=1)


class EvaluationResult(ApiModel):
    """Model verdict, clamped into its documented ranges"""
    score: Union[int, float]
    accuracy: Union[int, float]
    errors: List[str] = Field(default_factory=list)
    feedback: str = ''

    @field_validator('score')
    @classmethod
    def _clamp_score(cls, v):
        return min(max(v, 0), 10)

    @field_validator('accuracy')
    @classmethod
    def _clamp_accuracy(cls, v):
        return min(max(v, 0), 100)

    @field_validator('errors', mode='before')
    @classmethod
    def _errors(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(e) for e in v][:MAX_ERRORS]


class HistoryItemCreate(ApiModel):
    user_identifier: str = Field(alias='userIdentifier', min_length=1)
    drawing_type: str = Field(alias='drawingType', min_length=1)
    duration_seconds: int = Field(alias='durationSeconds', ge=0)
    score: float = Field(ge=0, le=10)
    accuracy: float = Field(ge=0, le=100)
    errors: List[str] = Field(default_factory=list, max_length=MAX_ERRORS)
    feedback: str = ''


_adapters = {}


def _adapter(model):
    key = id(model)
    if key not in _adapters:
        _adapters[key] = TypeAdapter(model)
    return _adapters[key]


def describe_validation_error(exc):
    """Turn the first pydantic error into one readable sentence"""
    first = exc.errors()[0]
    kind = first.get('type', '')
    field = '.'.join(str(part) for part in first.get('loc', ()) if not isinstance(part, int))
    if kind in ('union_tag_invalid', 'union_tag_not_found'):
        return 'Invalid action'
    if kind == 'missing':
        return f"{field.split('.')[-1]} is required"
    if kind == 'value_error':
        return str(first.get('ctx', {}).get('error', first.get('msg')))
    return f"{field}: {first.get('msg')}" if field else first.get('msg')


def parse_request(model, body):
    """Validate a JSON body against a model or discriminated union"""
    if not isinstance(body, dict):
        raise RequestValidationError('Request body must be a JSON object')
    try:
        return _adapter(model).validate_python(body)
    except ValidationError as e:
        raise RequestValidationError(describe_validation_error(e))
