"""Storefront auth API: the FastAPI application serving ``/api/v1/auth``."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.auth import router as auth_router
from auth.config import AuthConfig
from config import Config

logging.basicConfig(level=Config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

Config.validate()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Auth API starting with %s store", AuthConfig.AUTH_STORE)
    yield


app = FastAPI(
    title="Storefront Auth API",
    description="Login risk, two-step verification and account security endpoints",
    lifespan=lifespan,
)

# Cookies carry the session, so origins must be listed explicitly.
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", AuthConfig.CSRF_HEADER_NAME],
)

app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"])


@app.get("/health")
async def health():
    return {"status": "healthy", "store": AuthConfig.AUTH_STORE}
