import logging

from fastapi import FastAPI
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ridehail.core.config import settings
from ridehail.core.db import Base, engine
from ridehail.domains.drivers.router import router as drivers_router
from ridehail.domains.identity.router import router as identity_router
from ridehail.domains.notifications.router import router as notifications_router
from ridehail.domains.offers.router import router as offers_router
from ridehail.domains.payments.router import router as payments_router
from ridehail.domains.ratings.router import router as ratings_router
from ridehail.domains.rides.router import router as rides_router
from ridehail.realtime.feed import feed
from ridehail.realtime.router import router as realtime_router


logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

# Paths that keep the serverless handlers' `{"error", "details"}` envelope.
SERVERLESS_PREFIX = "/api/"

app = FastAPI(title=settings.app_name)


def _is_serverless(request) -> bool:
    return request.url.path.startswith(SERVERLESS_PREFIX)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request, exc: RequestValidationError):
    # Helpful for debugging 422s in dev. Do not log full bodies in prod.
    if settings.env == "dev":
        try:
            body = await request.body()
        except Exception:
            body = b""
        logger.info("[422] path=%s errors=%s body=%r", request.url.path, exc.errors(), body[:500])
    if _is_serverless(request):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid payload", "details": jsonable_errors(exc)},
        )
    return await request_validation_exception_handler(request, exc)


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request, exc: StarletteHTTPException):
    if not _is_serverless(request):
        return await http_exception_handler(request, exc)
    detail = exc.detail
    if isinstance(detail, dict):
        content = {"error": detail.get("message") or detail.get("code") or "Request failed", "details": detail}
    else:
        content = {"error": str(detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


# Dev CORS so a local frontend can call the API from the browser.
origins = [o.strip() for o in settings.cors_allow_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins if origins else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def _startup() -> None:
    # Tables are owned by this service; create any that are missing.
    Base.metadata.create_all(bind=engine)


@app.get("/health")
def health() -> dict:
    return {
        "ok": True,
        "service": settings.app_name,
        "env": settings.env,
        "razorpay_missing": settings.razorpay_missing_fields(),
        "realtime_subscribers": feed.subscriber_count(),
    }


@app.get("/config/public")
def public_config() -> dict:
    return {
        "app_base_url": settings.app_base_url,
        "map_provider": settings.map_provider,
        "map_api_key": settings.map_api_key,
        "razorpay_key_id": settings.razorpay_key_id,
        "currency": "INR",
        "base_fare_rupees": settings.base_fare_rupees,
        "per_km_rupees": settings.per_km_rupees,
        "avg_speed_kmph": settings.avg_speed_kmph,
        "nearby_radius_km": settings.nearby_radius_km,
    }


app.include_router(identity_router, tags=["identity"])
app.include_router(rides_router, tags=["rides"])
app.include_router(offers_router, tags=["ride-offers"])
app.include_router(drivers_router, tags=["drivers"])
app.include_router(payments_router, tags=["payments"])
app.include_router(notifications_router, tags=["notifications"])
app.include_router(ratings_router, tags=["ratings"])
app.include_router(realtime_router, tags=["realtime"])
