import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .auth_router import router
from .book_router import book_router
from .config import get_settings
from .create_db import init_db
from .errors import register_exception_handlers
from .loan_router import loan_router
from .permission_router import permission_router
from .role_router import role_router
from .user_router import user_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    # a missing required setting stops the startup here
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    init_db()
    yield


app = FastAPI(title="Stone Library API", lifespan=lifespan)

register_exception_handlers(app)

app.include_router(router)
app.include_router(user_router)
app.include_router(role_router)
app.include_router(permission_router)
# /loan and /return must be matched before /{book_id}
app.include_router(loan_router)
app.include_router(book_router)


@app.get("/health")
def health():
    return {"status": "ok"}
