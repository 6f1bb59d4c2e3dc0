"""FastAPI application exposing the blog's auth, post, category and comment endpoints."""

import logging
from typing import Any, Dict, List, Optional, Tuple, Type

from fastapi import APIRouter, Depends, FastAPI, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles
from prometheus_client import Counter, make_asgi_app
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import Match

from . import services
from .auth import AuthContext, authorize_owner, get_current_user, get_db, require_admin
from .config import settings
from .database import init_db
from .errors import BlogAPIError, ValidationFailed
from .responses import Envelope, api_response, ok
from .schemas import (
    AuthPayload,
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    CommentCreate,
    CommentListItem,
    CommentOut,
    HealthStatus,
    LoginRequest,
    PostCreate,
    PostOut,
    PostUpdate,
    RegisterRequest,
    UserOut,
)
from .storage import storage_root

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
app = FastAPI(title=settings.api_title)
app.state.limiter = limiter
init_db()

app.mount(settings.storage_url, StaticFiles(directory=str(storage_root())), name="storage")
app.mount("/metrics", make_asgi_app())

# Prometheus counter to track API requests by method, route template and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)


def _endpoint_label(request: Request) -> str:
    """Route template for the request, so ids in the path share one label."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return "unmatched"


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log each request with its outcome and count it by route template."""
    endpoint = _endpoint_label(request)
    logger.info("request %s %s", request.method, request.url.path)
    status = "500"
    try:
        response = await call_next(request)
        status = str(response.status_code)
        logger.info("response %s %s status %s", request.method, endpoint, status)
        return response
    except Exception:
        logger.exception("error handling %s %s", request.method, request.url.path)
        raise
    finally:
        REQUEST_COUNTER.labels(method=request.method, endpoint=endpoint, status=status).inc()


# ---------------------------------------------------------------------------
# Error envelopes
# ---------------------------------------------------------------------------

_LOCATIONS = {"body", "query", "path", "header", "cookie"}


def _field_errors(exc: RequestValidationError) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        loc = list(error.get("loc", ()))
        if loc and loc[0] in _LOCATIONS:
            loc = loc[1:]
        field = ".".join(str(part) for part in loc) or "body"
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(field, []).append(message)
    return errors


@app.exception_handler(BlogAPIError)
async def handle_api_error(request: Request, exc: BlogAPIError):
    return api_response(None, exc.message, exc.status_code, exc.errors)


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    return api_response(
        None, ValidationFailed.default_message, ValidationFailed.status_code, _field_errors(exc)
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    return api_response(None, str(exc.detail), exc.status_code)


@app.exception_handler(RateLimitExceeded)
async def handle_rate_limit(request: Request, exc: RateLimitExceeded):
    logger.warning("rate limit exceeded for %s %s", request.method, request.url.path)
    return api_response(None, "Too many requests", 429)


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception):
    logger.exception("unhandled error for %s %s", request.method, request.url.path)
    return api_response(None, "Internal server error", 500)


@app.get("/health", response_model=Envelope[HealthStatus])
def health():
    return ok(HealthStatus(), "Service is healthy")


router = APIRouter(prefix=settings.api_prefix)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def _auth_payload(token: str, user) -> AuthPayload:
    return AuthPayload(access_token=token, user=UserOut.model_validate(user))


@router.post("/register", response_model=Envelope[AuthPayload])
@limiter.limit(settings.auth_rate_limit)
def register(request: Request, payload: RegisterRequest, db: Session = Depends(get_db)):
    token, user = services.register_user(db, payload.name, payload.email, payload.password)
    return ok(_auth_payload(token, user), "User registered successfully")


@router.post("/login", response_model=Envelope[AuthPayload])
@limiter.limit(settings.auth_rate_limit)
def login(request: Request, payload: LoginRequest, db: Session = Depends(get_db)):
    token, user = services.authenticate(db, payload.email, payload.password)
    return ok(_auth_payload(token, user), "User logged in successfully")


@router.post("/logout", response_model=Envelope)
def logout(context: AuthContext = Depends(get_current_user), db: Session = Depends(get_db)):
    services.revoke_token(db, context.token)
    return ok(None, "User logged out successfully")


@router.get("/user", response_model=Envelope[UserOut])
def current_user(context: AuthContext = Depends(get_current_user)):
    return ok(UserOut.model_validate(context.user), "User details fetched successfully")


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@router.get("/categories", response_model=Envelope[List[CategoryOut]])
def list_categories(db: Session = Depends(get_db)):
    categories = services.list_categories(db)
    return ok([CategoryOut.model_validate(c) for c in categories], "Categories fetched successfully")


@router.post(
    "/categories",
    response_model=Envelope[CategoryOut],
    status_code=201,
    dependencies=[Depends(require_admin)],
)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    category = services.create_category(db, payload.name)
    return ok(CategoryOut.model_validate(category), "Category created successfully")


@router.get("/categories/{category_id}", response_model=Envelope[CategoryOut])
def get_category(category_id: int, db: Session = Depends(get_db)):
    category = services.get_category(db, category_id)
    return ok(CategoryOut.model_validate(category), "Category details fetched successfully")


@router.put(
    "/categories/{category_id}",
    response_model=Envelope[CategoryOut],
    dependencies=[Depends(require_admin)],
)
@router.patch(
    "/categories/{category_id}",
    response_model=Envelope[CategoryOut],
    dependencies=[Depends(require_admin)],
    include_in_schema=False,
)
def update_category(category_id: int, payload: CategoryUpdate, db: Session = Depends(get_db)):
    category = services.update_category(db, category_id, payload.name)
    return ok(CategoryOut.model_validate(category), "Category updated successfully")


@router.delete(
    "/categories/{category_id}",
    response_model=Envelope,
    dependencies=[Depends(require_admin)],
)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    services.delete_category(db, category_id)
    return ok(None, "Category deleted successfully")


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


def _posts(posts) -> List[PostOut]:
    return [PostOut.model_validate(p) for p in posts]


@router.get("/posts", response_model=Envelope[List[PostOut]])
def list_published_posts(db: Session = Depends(get_db)):
    return ok(_posts(services.list_published_posts(db)), "Posts fetched successfully")


@router.get("/posts/{post_id}", response_model=Envelope[PostOut])
def get_post(post_id: int, db: Session = Depends(get_db)):
    return ok(PostOut.model_validate(services.get_post(db, post_id)), "Post fetched successfully")


@router.get("/categories/{category_id}/posts", response_model=Envelope[List[PostOut]])
@router.get(
    "/posts/category/{category_id}",
    response_model=Envelope[List[PostOut]],
    include_in_schema=False,
)
def list_category_posts(category_id: int, db: Session = Depends(get_db)):
    posts = services.list_posts_by_category(
        db, category_id, include_unpublished=settings.category_posts_include_unpublished
    )
    return ok(_posts(posts), "Posts fetched successfully")


@router.get("/user/posts", response_model=Envelope[List[PostOut]])
def list_my_posts(context: AuthContext = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(_posts(services.list_user_posts(db, context.user.id)), "Posts fetched successfully")


@router.get("/user/posts/{post_id}", response_model=Envelope[PostOut])
def get_my_post(
    post_id: int,
    context: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    post = services.get_post(db, post_id)
    authorize_owner(context, post)
    return ok(PostOut.model_validate(post), "Post fetched successfully")


PostBody = Tuple[Dict[str, Any], Optional[UploadFile]]


async def _post_body(request: Request) -> PostBody:
    """Read a post body sent as JSON or as a (multipart) form.

    Forms are the only way to attach a banner. An empty form value counts
    as an explicit null, so a form update can clear ``category_id``.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            raise ValidationFailed.for_field("body", "The request body must be valid JSON.")
        if not isinstance(data, dict):
            raise ValidationFailed.for_field("body", "The request body must be a JSON object.")
        return data, None
    if not content_type:
        return {}, None

    form = await request.form()
    banner = form.get("banner")
    if not isinstance(banner, StarletteUploadFile) or not banner.filename:
        banner = None
    data = {
        key: (None if value == "" else value)
        for key, value in form.items()
        if key != "banner"
    }
    return data, banner


def _validate(model: Type[BaseModel], data: Dict[str, Any]):
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise RequestValidationError(exc.errors())


def _body_docs(model: Type[BaseModel]) -> Dict[str, Any]:
    schema = model.model_json_schema()
    form_schema = dict(schema)
    form_schema["properties"] = {
        **schema["properties"],
        "banner": {"type": "string", "format": "binary"},
    }
    return {
        "requestBody": {
            "content": {
                "application/json": {"schema": schema},
                "multipart/form-data": {"schema": form_schema},
            }
        }
    }


@router.post(
    "/user/posts",
    response_model=Envelope[PostOut],
    status_code=201,
    openapi_extra=_body_docs(PostCreate),
)
def create_post(
    context: AuthContext = Depends(get_current_user),
    body: PostBody = Depends(_post_body),
    db: Session = Depends(get_db),
):
    data, banner = body
    payload = _validate(PostCreate, data)
    post = services.create_post(
        db,
        context,
        title=payload.title,
        content=payload.content,
        category_id=payload.category_id,
        is_published=payload.is_published,
        banner=banner,
    )
    return ok(PostOut.model_validate(post), "Post created successfully")


@router.put(
    "/user/posts/{post_id}",
    response_model=Envelope[PostOut],
    openapi_extra=_body_docs(PostUpdate),
)
def update_post(
    post_id: int,
    context: AuthContext = Depends(get_current_user),
    body: PostBody = Depends(_post_body),
    db: Session = Depends(get_db),
):
    data, banner = body
    payload = _validate(PostUpdate, data)
    fields = payload.model_dump(include=payload.model_fields_set)
    post = services.update_post(db, context, post_id, fields, banner=banner)
    return ok(PostOut.model_validate(post), "Post updated successfully")


@router.patch("/user/posts/{post_id}/toggle-publish", response_model=Envelope[PostOut])
def toggle_publish(
    post_id: int,
    context: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    post = services.toggle_publish(db, context, post_id)
    state = "published" if post.is_published else "unpublished"
    return ok(PostOut.model_validate(post), f"Post {state} successfully")


@router.delete("/user/posts/{post_id}", response_model=Envelope)
def delete_post(
    post_id: int,
    context: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    services.delete_post(db, context, post_id)
    return ok(None, "Post deleted successfully")


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


@router.get(
    "/posts/{post_id}/comments",
    response_model=Envelope[List[CommentListItem]],
    dependencies=[Depends(get_current_user)],
)
def list_comments(post_id: int, db: Session = Depends(get_db)):
    comments = services.list_comments(db, post_id)
    return ok([CommentListItem.model_validate(c) for c in comments], "Comments fetched successfully")


@router.post("/posts/{post_id}/comments", response_model=Envelope[CommentOut], status_code=201)
def create_comment(
    post_id: int,
    payload: CommentCreate,
    context: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    comment = services.create_comment(db, context, post_id, payload.body)
    return ok(CommentOut.model_validate(comment), "Comment created successfully")


@router.delete("/comments/{comment_id}", response_model=Envelope)
def delete_comment(
    comment_id: int,
    context: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    services.delete_comment(db, context, comment_id)
    return ok(None, "Comment deleted successfully")


app.include_router(router)
