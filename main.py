# File: main.py

import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from auth.router import router as auth_router
from routers.products import router as products_router
from routers.seller import router as seller_router
from routers.cart import router as cart_router
from routers.orders import router as orders_router
from routers.payment import router as payment_router
from routers.notifications import router as notifications_router
from routers.admin import router as admin_router
from routers.product_requests import router as product_requests_router
from routers.reviews import router as reviews_router
from routers.status import router as status_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("API")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Backend services for the Midnight Cravings campus food marketplace.",
    version="1.0.0"
)


# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error Handlers ---
@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# --- Include Routers ---
app.include_router(auth_router)
app.include_router(products_router)
app.include_router(seller_router)
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(payment_router)
app.include_router(notifications_router)
app.include_router(admin_router)
app.include_router(product_requests_router)
app.include_router(reviews_router)
app.include_router(status_router)

# uploaded product images and college ids
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")


# --- Root Endpoint ---
@app.get("/")
def read_root():
    return {"status": "Midnight Cravings API is online and operational."}
