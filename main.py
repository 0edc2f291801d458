import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from auth import Identity, TokenVerifier, check_email
from blogs import BlogService
from comments import list_comments, post_comment
from config import Settings
from database import BlogStore
from errors import BlogifyError, StoreError, Unauthorized
from media import MediaHost
from search import SearchResolver
from wishlist import WishlistToggle

settings = Settings.from_env()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger("blogify")


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = BlogStore.from_settings(settings).connect()
    app.state.store = store
    app.state.verifier = TokenVerifier.from_settings(settings)
    app.state.media = MediaHost.from_settings(settings)
    try:
        yield
    finally:
        store.close()


app = FastAPI(title="Blogify API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BlogifyError)
async def blogify_error_handler(request: Request, exc: BlogifyError):
    detail = "Internal server error" if isinstance(exc, StoreError) else exc.detail
    return JSONResponse(status_code=exc.status_code, content={"detail": detail})

# Dependencies

def get_store(request: Request) -> BlogStore:
    return request.app.state.store

def get_verifier(request: Request) -> TokenVerifier:
    return request.app.state.verifier

def get_media(request: Request) -> MediaHost:
    return request.app.state.media

bearer = HTTPBearer(auto_error=False)

def current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    claimed_email: Optional[str] = Header(None, alias="X-User-Email"),
    verifier: TokenVerifier = Depends(get_verifier),
) -> Identity:
    if credentials is None:
        raise Unauthorized("Unauthorized access")
    identity = verifier.verify(credentials.credentials)
    return check_email(identity, claimed_email)

# Pydantic models for requests

class CommentCreate(BaseModel):
    itemId: Optional[str] = None
    text: Optional[str] = None
    userName: Optional[str] = None
    userImage: Optional[str] = None

class WishlistToggleRequest(BaseModel):
    userId: Optional[str] = None
    itemId: Optional[str] = None


def _read_image(image: Optional[UploadFile]):
    if image is None or not image.filename:
        return None
    return image.file.read(), image.filename


def _form_tags(tags: List[str]) -> List[str]:
    # Accept repeated fields as well as a single comma separated value
    return [t.strip() for raw in tags for t in raw.split(",") if t.strip()]

# Routes

@app.get("/")
def root():
    return {"message": "Blogify API running"}

@app.get("/health")
def health(store: BlogStore = Depends(get_store)):
    response = {"backend": "running", "database": "unavailable"}
    try:
        store.ping()
        response["database"] = "connected"
    except StoreError:
        logger.warning("Health check could not reach the database")
    return response

@app.get("/blogs")
def search_blogs(search: Optional[str] = None, store: BlogStore = Depends(get_store)):
    return SearchResolver(store, raw_patterns=settings.search_raw_patterns).search(search)

@app.post("/blogs")
def create_blog(
    title: Optional[str] = Form(None),
    shortDescription: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    tags: List[str] = Form([]),
    content: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: Identity = Depends(current_user),
    store: BlogStore = Depends(get_store),
    media: MediaHost = Depends(get_media),
):
    fields = {
        "title": title,
        "shortDescription": shortDescription,
        "category": category,
        "tags": _form_tags(tags),
        "content": content,
    }
    return BlogService(store, media).create(fields, user, _read_image(image))

@app.get("/blogs/{blog_id}")
def get_blog(blog_id: str, user: Identity = Depends(current_user), store: BlogStore = Depends(get_store)):
    return BlogService(store).get(blog_id)

@app.put("/blogs/{blog_id}")
def update_blog(
    blog_id: str,
    title: Optional[str] = Form(None),
    shortDescription: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    tags: Optional[List[str]] = Form(None),
    content: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: Identity = Depends(current_user),
    store: BlogStore = Depends(get_store),
    media: MediaHost = Depends(get_media),
):
    fields = {
        "title": title,
        "shortDescription": shortDescription,
        "category": category,
        "tags": _form_tags(tags) if tags is not None else None,
        "content": content,
    }
    return BlogService(store, media).update(blog_id, fields, user, _read_image(image))

@app.get("/recentBlogs")
def recent_blogs(limit: int = Query(settings.recent_blogs_limit, ge=1, le=50), store: BlogStore = Depends(get_store)):
    return BlogService(store).recent(limit)

@app.get("/featuredBlogs")
def featured_blogs(limit: int = Query(settings.featured_blogs_limit, ge=1, le=50), store: BlogStore = Depends(get_store)):
    return BlogService(store).featured(limit)

@app.get("/comments/{blog_id}")
def get_comments(blog_id: str, store: BlogStore = Depends(get_store)):
    return list_comments(store, blog_id)

@app.post("/comments")
def create_comment(payload: CommentCreate, user: Identity = Depends(current_user), store: BlogStore = Depends(get_store)):
    return post_comment(store, payload.itemId, payload.text, payload.userName, payload.userImage)

@app.post("/wishlists")
def toggle_wishlist(payload: WishlistToggleRequest, user: Identity = Depends(current_user), store: BlogStore = Depends(get_store)):
    return WishlistToggle(store).toggle(payload.userId, payload.itemId)

@app.get("/wishlistedBlogs")
def wishlisted_blogs(userId: Optional[str] = None, user: Identity = Depends(current_user), store: BlogStore = Depends(get_store)):
    return WishlistToggle(store).list_wishlisted(userId)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
