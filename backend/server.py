from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, APIRouter, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient

from backend.config import Settings, load_settings
from backend.donation_store import DonationStore
from backend.donations import DonationService
from backend.errors import DonationError, InvalidPayload
from backend.gateway import NowPaymentsClient
from backend.lookups import TeamNameCache, lookup_router
from backend.models import DonationCreate, SUPPORTED_CURRENCIES
from backend.reporting import DonationReporter
from backend.signature import SIGNATURE_HEADER

logger = logging.getLogger(__name__)

donate_router = APIRouter(prefix="/donate")

# ─── Donation Endpoints ───

@donate_router.post("/create")
async def create_donation(request: Request, body: Optional[DonationCreate] = None):
    body = body or DonationCreate()
    service: DonationService = request.app.state.donations
    return await service.create_intent(
        body.amount,
        donor_name=body.donor_name,
        donor_email=body.donor_email,
        message=body.message,
        origin=str(request.base_url),
    )

@donate_router.post("/ipn")
async def donation_ipn(request: Request):
    try:
        payload = await request.json()
    except ValueError:
        raise InvalidPayload()
    logger.debug(f"IPN received: {payload}")
    await request.app.state.donations.reconcile(payload, request.headers.get(SIGNATURE_HEADER))
    return {"success": True}

@donate_router.get("/status/{order_id}")
async def donation_status(request: Request, order_id: str):
    donation = await request.app.state.donations.get_status(order_id)
    return {"success": True, "donation": donation}

@donate_router.get("/recent")
async def recent_donations(request: Request):
    reporter: DonationReporter = request.app.state.reporter
    donations = await reporter.recent()
    stats = await reporter.totals()
    return {"success": True, "donations": donations, "stats": stats}

@donate_router.get("/currencies")
async def donation_currencies():
    return {"success": True, "currencies": SUPPORTED_CURRENCIES}

# ─── App Setup ───

async def donation_error_handler(request: Request, exc: DonationError):
    body = {"success": False, "error": exc.reason}
    # webhook callers only learn that the notification was refused
    if not request.url.path.endswith("/ipn"):
        body["message"] = exc.message
    return JSONResponse(status_code=exc.status_code, content=body)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    if request.url.path.startswith("/donate/"):
        return await donation_error_handler(request, InvalidPayload("Invalid request body"))
    return await request_validation_exception_handler(request, exc)


def create_app(settings: Optional[Settings] = None, db=None,
               gateway: Optional[NowPaymentsClient] = None) -> FastAPI:
    """Wire the API together.

    ``db`` and ``gateway`` default to a Motor database and a NOWPayments
    client built from ``settings``; tests pass in-memory stand-ins.
    """
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    client = None
    if db is None:
        client = AsyncIOMotorClient(settings.mongo_url)
        db = client[settings.db_name]
    if gateway is None and not settings.demo_mode:
        gateway = NowPaymentsClient.from_settings(settings)

    store = DonationStore(db)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.ensure_indexes()
        logger.info(f"World Cup 2026 API started ({settings.environment}, donations in {settings.donation_mode} mode)")
        yield
        if gateway is not None:
            await gateway.aclose()
        if client is not None:
            client.close()

    app = FastAPI(title="FIFA World Cup 2026 API", lifespan=lifespan)
    app.state.db = db
    app.state.donations = DonationService(settings, store, gateway)
    app.state.reporter = DonationReporter(store)
    app.state.team_cache = TeamNameCache(ttl=settings.teams_cache_ttl)

    @app.get("/")
    async def root():
        return {"message": "Welcome to FIFA World Cup 2026 API"}

    app.include_router(donate_router)
    app.include_router(lookup_router)
    app.add_exception_handler(DonationError, donation_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=settings.cors_origin_list(),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


if __name__ == "__main__":
    import uvicorn

    config = load_settings()
    uvicorn.run(create_app(config), host="0.0.0.0", port=config.port)
