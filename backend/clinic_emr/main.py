import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from clinic_emr.core.settings import configure_logging, settings, validate_settings
from clinic_emr.db.session import engine
from clinic_emr.errors import Conflict, NotFound, ValidationFailed
from clinic_emr.models import Base
from clinic_emr.routers.chart_entries import router as chart_entries_router
from clinic_emr.routers.modifications import router as modifications_router
from clinic_emr.routers.patients import router as patients_router
from clinic_emr.services.chart_export import ExportFailed

app = FastAPI(title="Clinic EMR API", version="0.1.0")
logger = logging.getLogger("clinic_emr.startup")


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.detail})


@app.exception_handler(Conflict)
async def conflict_handler(request: Request, exc: Conflict):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": exc.detail})


@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=exc.as_payload()
    )


@app.exception_handler(ExportFailed)
async def export_failed_handler(request: Request, exc: ExportFailed):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": exc.detail, "format": exc.export_format},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = request.headers.get("x-request-id")
    logger.exception("Unhandled server error", extra={"request_id": request_id})
    payload = {"detail": "Internal server error"}
    if request_id:
        payload["request_id"] = request_id
    return JSONResponse(status_code=500, content=payload)


@app.on_event("startup")
def startup():
    configure_logging(settings)
    validate_settings(settings)
    Base.metadata.create_all(bind=engine)
    logger.info("Schema ensured (%s tables).", len(Base.metadata.tables))


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(patients_router)
app.include_router(chart_entries_router)
app.include_router(modifications_router)
