import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from contentgraph.core.config import settings
from contentgraph.core.exceptions import ContentError
from contentgraph.api.v1.main import api_router

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
)

# Parse CORS origins from comma-separated string in settings
cors_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ContentError)
async def content_error_handler(request: Request, exc: ContentError):
    if exc.status_code >= 500:
        logger.error("Content error on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
async def read_root():
    return {"message": "ContentGraph backend is running"}


if __name__ == "__main__":
    uvicorn.run("contentgraph.main:app", host=settings.HOST, port=settings.PORT, reload=True)
