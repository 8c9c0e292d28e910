import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .entities import ImageKind


class SliderForm(BaseModel):
    # id, is_active and created_at are never accepted from callers
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title1: str = Field(min_length=1, max_length=20)
    title2: str = Field(min_length=1, max_length=20)
    description: str = Field(min_length=1, max_length=150)
    redirect_url: Optional[str] = None
    redirect_url_text: str = Field(min_length=1, max_length=40)


class Slider(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title1: str
    title2: str
    description: str
    redirect_url: Optional[str] = None
    redirect_url_text: str
    image_url: Optional[str] = None
    is_active: bool
    created_at: datetime
    modified_at: Optional[datetime] = None


class BookForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    genre_id: int
    author_id: int
    title: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=350)
    book_code: str = Field(min_length=1, max_length=50)
    cost_price: float = Field(ge=0)
    sale_price: float = Field(ge=0)
    discount_percent: Optional[float] = Field(default=None, ge=0, le=100)
    is_featured: bool = False
    is_new: bool = False
    is_best_seller: bool = False
    is_available: bool = False
    stock_count: int = Field(ge=0)


class BookImage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    image_url: str
    kind: ImageKind


class Genre(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    is_active: bool


class Author(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: Optional[str] = None
    is_active: bool


class Book(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    genre_id: int
    author_id: int
    title: str
    description: Optional[str] = None
    book_code: str
    cost_price: float
    sale_price: float
    discount_percent: Optional[float] = None
    is_featured: bool
    is_new: bool
    is_best_seller: bool
    is_available: bool
    stock_count: int
    is_active: bool
    created_at: datetime
    modified_at: Optional[datetime] = None
    images: list[BookImage] = []


class Home(BaseModel):
    sliders: list[Slider]
    genres: list[Genre]


class ErrorCode(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    POLICY = "policy"
    UNEXPECTED = "unexpected"


class FieldError(BaseModel):
    field: Optional[str] = None
    message: str
    code: ErrorCode = ErrorCode.VALIDATION


class ServiceResult(BaseModel):
    errors: list[FieldError] = []
    entity_id: Optional[int] = None

    @property
    def success(self) -> bool:
        return not self.errors

    def fail(self, field: Optional[str], message: str, code: ErrorCode = ErrorCode.VALIDATION) -> "ServiceResult":
        self.errors.append(FieldError(field=field, message=message, code=code))
        return self


def field_errors(exc: ValidationError) -> list[FieldError]:
    """Flatten a pydantic ValidationError into field-keyed errors."""
    errors = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        field = ".".join(str(part) for part in loc) or None
        errors.append(FieldError(field=field, message=error["msg"]))
    return errors
