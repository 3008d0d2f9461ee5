import logging
import time
from datetime import datetime
from decimal import Decimal

from fastapi import FastAPI, Request, BackgroundTasks, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import ValidationError as PydanticValidationError

from config.config import load_settings
from errors.exceptions import ValidationError, ResourceError
from middleware.error_handler import setup_error_handlers
from models.validation import TransferTRXRequest
from node.startup import ServiceContext, build_services, startup, shutdown
from sweep.scheduler import sun_to_trx, trx_to_sun
from tron.client import TronClient

logger = logging.getLogger(__name__)

MISSING_PARAMETERS = "missing required parameters: toAddress, amount or privateKey"
INVALID_ADDRESS = "invalid address format"
INVALID_AMOUNT = "amount must be greater than zero"
INSUFFICIENT_BALANCE = "insufficient account balance"

app = FastAPI(title="TRON Sweeper API", version="1.0.0")

# Setup error handlers
setup_error_handlers(app)


@app.on_event("startup")
async def startup_event():
    """Build services from the config file unless they were provided"""
    if getattr(app.state, "services", None) is not None:
        return
    try:
        context = build_services(load_settings())
        app.state.services = context
        app.state.owns_services = True
        await startup(context)
    except Exception as e:
        logger.error(f"Failed to start services: {e}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    if getattr(app.state, "owns_services", False):
        await shutdown(app.state.services)


def get_services(request: Request) -> ServiceContext:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


@app.get("/", response_class=PlainTextResponse)
async def index():
    return "TRON multi-address sweeper is running..."


async def run_triggered_cycle(services: ServiceContext):
    try:
        report = await services.scheduler.run_cycle()
        if report.skipped:
            logger.info("Triggered sweep skipped, a cycle is already running")
    except Exception as e:
        logger.error(f"Triggered sweep failed: {e}")


@app.get("/ping", response_class=PlainTextResponse)
async def ping(request: Request, background_tasks: BackgroundTasks):
    """Acknowledge the trigger, then sweep in the background"""
    services = get_services(request)
    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    if services.scheduler.cycle_running:
        logger.info("Sweep trigger received while a cycle is running, skipping")
        return f"Sweep already in progress... {now}"
    background_tasks.add_task(run_triggered_cycle, services)
    return f"Checking balances... {now}"


async def _parse_transfer_request(request: Request) -> TransferTRXRequest:
    try:
        data = await request.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    try:
        return TransferTRXRequest(**data)
    except PydanticValidationError as e:
        fields = {err["loc"][0] for err in e.errors() if err.get("loc")}
        if "amount" in fields:
            raise ValidationError(INVALID_AMOUNT) from e
        raise ValidationError(MISSING_PARAMETERS) from e


@app.post("/transferTRX")
async def transfer_trx(request: Request):
    """One ad-hoc multi-sign transfer from the account behind ``privateKey``"""
    services = get_services(request)
    body = await _parse_transfer_request(request)
    logger.info(f"Multi-sign transfer requested: to {body.toAddress}, amount {body.amount}")

    if body.missing_fields():
        raise ValidationError(MISSING_PARAMETERS)

    try:
        to_address = TronClient.normalize_address(body.toAddress)
    except ValueError:
        logger.error(f"Invalid address format: {body.toAddress}")
        raise ValidationError(INVALID_ADDRESS)

    amount = Decimal(body.amount)
    amount_sun = trx_to_sun(amount) if amount > 0 else 0
    if amount_sun <= 0:
        raise ValidationError(INVALID_AMOUNT)

    try:
        from_address = TronClient.address_from_private_key(body.privateKey)
    except ValueError:
        raise ValidationError("invalid private key")

    client = services.credentials.create_ephemeral(body.privateKey)
    try:
        balance = await client.get_balance(from_address)
    finally:
        await client.close()

    logger.info(f"Balance of {from_address}: {sun_to_trx(balance)} TRX, requested {sun_to_trx(amount_sun)} TRX")
    if balance < amount_sun:
        raise ResourceError(INSUFFICIENT_BALANCE)

    outcome = await services.orchestrator.transfer(from_address, to_address, amount_sun)
    logger.info(f"Multi-sign transfer finished: {outcome.to_dict()}")
    return {"success": True, "data": outcome.to_dict()}


@app.get("/health")
async def health_check(request: Request):
    """Component health summary"""
    services = get_services(request)
    try:
        await services.health.run_health_checks()
        summary = services.health.get_health_summary()
        status_code = 503 if summary["status"] == "unhealthy" else 200
        return JSONResponse(content=summary, status_code=status_code)
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return JSONResponse(
            content={
                "status": "unhealthy",
                "message": "Health check system error",
                "timestamp": time.time()
            },
            status_code=503
        )


@app.get("/metrics")
async def metrics(request: Request):
    """Prometheus metrics endpoint"""
    services = get_services(request)
    content, content_type = services.health.generate_metrics()
    return Response(content=content, media_type=content_type)
