import logging
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from app.core.config import settings
from app.core.exceptions import ProvisioningValidationError
from app.core.logging_config import configure_logging
from app.models.provisioning import REQUIRED_SCOPES, ItemKind
from app.routers import provision

configure_logging()
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Push GitHub Actions secrets and variables into a deployment environment",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")

templates = Jinja2Templates(directory=BASE_DIR / "templates")

app.include_router(provision.router, prefix=settings.API_V1_STR, tags=["provision"])


@app.exception_handler(ProvisioningValidationError)
async def validation_error_handler(request: Request, exc: ProvisioningValidationError):
    logger.info("Rejected provisioning request: %s", exc)
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/", response_class=HTMLResponse)
async def read_root(request: Request):
    """Displays the provisioning form."""
    return templates.TemplateResponse(request, "index.html", {
        "project_name": settings.PROJECT_NAME,
        "api_prefix": settings.API_V1_STR,
        "scopes": REQUIRED_SCOPES,
        "kinds": list(ItemKind),
        "default_kind": ItemKind.VARIABLES,
    })


@app.get("/healthcheck")
async def healthcheck():
    """Healthcheck endpoint to check if the application is running."""
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, log_level=settings.LOG_LEVEL.lower(), reload=True)
