import logging
import uuid
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from . import entities
from .config import get_settings
from .db import get_session, init_db
from .models import Book, BookForm, ErrorCode, Home, ServiceResult, Slider, SliderForm, field_errors
from .repository import Repository
from .service import BOOK_DETAIL_INCLUDES, BookService, SliderService
from .storage import AssetStore
from .uploads import ImagePolicy, Upload

settings = get_settings()

image_policy = ImagePolicy(
    allowed_types=frozenset(settings.allowed_image_types),
    max_bytes=settings.max_image_bytes,
)


def get_asset_store() -> AssetStore:
    return AssetStore(settings.media_root)


def get_slider_service(session=Depends(get_session), assets=Depends(get_asset_store)) -> SliderService:
    return SliderService(session, assets, folder=settings.slider_folder, policy=image_policy)


def get_book_service(session=Depends(get_session), assets=Depends(get_asset_store)) -> BookService:
    return BookService(session, assets, folder=settings.book_folder, policy=image_policy)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    assets = get_asset_store()
    assets.ensure_folder(settings.slider_folder)
    assets.ensure_folder(settings.book_folder)
    if settings.require_https and settings.cors_origin_list:
        if any(not origin.startswith("https://") for origin in settings.cors_origin_list):
            raise RuntimeError("APP_REQUIRE_HTTPS is true but a CORS origin is not HTTPS")
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Admin API for the Pustok bookstore catalog: sliders, books and their images.",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

if settings.otel_enabled:
    from .otel import configure_otel

    configure_otel(app)

if settings.cors_origin_list:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

app.mount("/media", StaticFiles(directory=settings.media_root, check_dir=False), name="media")

router_v1 = APIRouter(prefix="/api/v1", tags=["v1"])

_STATUS_BY_CODE = {
    ErrorCode.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.POLICY: status.HTTP_409_CONFLICT,
    ErrorCode.UNEXPECTED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _failure(result: ServiceResult, form: Optional[dict] = None) -> JSONResponse:
    status_code = max(_STATUS_BY_CODE[error.code] for error in result.errors)
    content: dict = {"errors": [error.model_dump(mode="json") for error in result.errors]}
    if form is not None:
        content["form"] = form
    return JSONResponse(status_code=status_code, content=content)


def _invalid_form(exc: ValidationError) -> JSONResponse:
    return _failure(ServiceResult(errors=field_errors(exc)))


def _to_upload(file: Optional[UploadFile]) -> Optional[Upload]:
    # browsers submit an empty part when no file was picked
    if file is None or not file.filename:
        return None
    return Upload.from_stream(
        file.file,
        file_name=file.filename,
        content_type=file.content_type or "",
        length=file.size,
    )


@router_v1.get("/health", tags=["health"])
def health() -> dict:
    return {"status": "ok"}


@router_v1.get("/home", response_model=Home)
def home(
    sliders: SliderService = Depends(get_slider_service),
    session=Depends(get_session),
) -> Home:
    genres = Repository(session, entities.Genre).query(entities.Genre.is_active.is_(True))
    return Home.model_validate(
        {"sliders": sliders.get_all(entities.Slider.is_active.is_(True)), "genres": genres},
        from_attributes=True,
    )


@router_v1.get("/sliders", response_model=List[Slider])
def list_sliders(search: Optional[str] = None, service: SliderService = Depends(get_slider_service)):
    if search and search.strip():
        return service.search(search.strip())
    return service.get_all()


@router_v1.get("/sliders/{slider_id}", response_model=Slider)
def get_slider(slider_id: int, service: SliderService = Depends(get_slider_service)):
    try:
        return service.get_by_id(slider_id)
    except KeyError as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Slider not found") from exc


@router_v1.post("/sliders", response_model=Slider, status_code=status.HTTP_201_CREATED)
def create_slider(
    title1: str = Form(...),
    title2: str = Form(...),
    description: str = Form(...),
    redirect_url_text: str = Form(...),
    redirect_url: Optional[str] = Form(None),
    image_file: Optional[UploadFile] = File(None),
    service: SliderService = Depends(get_slider_service),
):
    try:
        form = SliderForm(
            title1=title1,
            title2=title2,
            description=description,
            redirect_url=redirect_url or None,
            redirect_url_text=redirect_url_text,
        )
    except ValidationError as exc:
        return _invalid_form(exc)

    result = service.create(form, _to_upload(image_file))
    if not result.success:
        return _failure(result)
    return service.get_by_id(result.entity_id)


@router_v1.put("/sliders/{slider_id}", response_model=Slider)
def update_slider(
    slider_id: int,
    title1: str = Form(...),
    title2: str = Form(...),
    description: str = Form(...),
    redirect_url_text: str = Form(...),
    redirect_url: Optional[str] = Form(None),
    image_file: Optional[UploadFile] = File(None),
    service: SliderService = Depends(get_slider_service),
):
    try:
        form = SliderForm(
            title1=title1,
            title2=title2,
            description=description,
            redirect_url=redirect_url or None,
            redirect_url_text=redirect_url_text,
        )
    except ValidationError as exc:
        return _invalid_form(exc)

    result = service.update(slider_id, form, _to_upload(image_file))
    if not result.success:
        return _failure(result)
    return service.get_by_id(slider_id)


@router_v1.post("/sliders/{slider_id}/toggle", response_model=Slider)
def toggle_slider(slider_id: int, service: SliderService = Depends(get_slider_service)):
    try:
        return service.soft_delete(slider_id)
    except KeyError as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Slider not found") from exc


@router_v1.delete("/sliders/{slider_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_slider(slider_id: int, service: SliderService = Depends(get_slider_service)):
    try:
        result = service.delete(slider_id)
    except KeyError as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Slider not found") from exc
    if not result.success:
        return _failure(result)
    return None


@router_v1.get("/books", response_model=List[Book])
def list_books(service: BookService = Depends(get_book_service)):
    return service.get_all(includes=BOOK_DETAIL_INCLUDES)


@router_v1.get("/books/{book_id}", response_model=Book)
def get_book(book_id: int, service: BookService = Depends(get_book_service)):
    try:
        return service.get_by_id(book_id)
    except KeyError as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found") from exc


@router_v1.post("/books", response_model=Book, status_code=status.HTTP_201_CREATED)
def create_book(
    genre_id: int = Form(...),
    author_id: int = Form(...),
    title: str = Form(...),
    book_code: str = Form(...),
    cost_price: float = Form(...),
    sale_price: float = Form(...),
    stock_count: int = Form(...),
    description: Optional[str] = Form(None),
    discount_percent: Optional[float] = Form(None),
    is_featured: bool = Form(False),
    is_new: bool = Form(False),
    is_best_seller: bool = Form(False),
    is_available: bool = Form(False),
    cover_image: Optional[UploadFile] = File(None),
    back_image: Optional[UploadFile] = File(None),
    image_files: Optional[List[UploadFile]] = File(None),
    service: BookService = Depends(get_book_service),
):
    submitted = {
        "genre_id": genre_id,
        "author_id": author_id,
        "title": title,
        "description": description,
        "book_code": book_code,
        "cost_price": cost_price,
        "sale_price": sale_price,
        "discount_percent": discount_percent,
        "is_featured": is_featured,
        "is_new": is_new,
        "is_best_seller": is_best_seller,
        "is_available": is_available,
        "stock_count": stock_count,
    }
    try:
        form = BookForm(**submitted)
    except ValidationError as exc:
        return _failure(ServiceResult(errors=field_errors(exc)), form=submitted)

    details = [upload for upload in map(_to_upload, image_files or []) if upload is not None]
    result = service.create(
        form,
        cover_image=_to_upload(cover_image),
        back_image=_to_upload(back_image),
        image_files=details,
    )
    if not result.success:
        return _failure(result, form=form.model_dump())
    return service.get_by_id(result.entity_id)


@router_v1.post("/books/{book_id}/toggle", response_model=Book)
def toggle_book(book_id: int, service: BookService = Depends(get_book_service)):
    try:
        return service.soft_delete(book_id)
    except KeyError as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found") from exc


@router_v1.delete("/books/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_book(book_id: int, service: BookService = Depends(get_book_service)):
    try:
        result = service.delete(book_id)
    except KeyError as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found") from exc
    if not result.success:
        return _failure(result)
    return None


app.include_router(router_v1)


request_logger = logging.getLogger("pustok.requests")


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    request_logger.error("request.database_error", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Internal server error"})


@app.middleware("http")
async def security_headers(request, call_next):
    if settings.require_https:
        forwarded_proto = request.headers.get("x-forwarded-proto", "")
        if forwarded_proto and forwarded_proto.lower() != "https":
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "HTTPS required"})
        if request.url.scheme != "https" and not forwarded_proto:
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "HTTPS required"})

    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    if request.url.path.startswith("/media/"):
        response.headers.setdefault("Content-Security-Policy", "default-src 'none'; img-src 'self'")
    else:
        response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    if settings.require_https:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")
    return response


@app.middleware("http")
async def request_logging_middleware(request, call_next):
    request_logger.info("request.start", extra={"path": request.url.path, "method": request.method})
    response = await call_next(request)
    request_logger.info(
        "request.end",
        extra={"path": request.url.path, "method": request.method, "status": response.status_code},
    )
    return response


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response