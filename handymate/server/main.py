import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from handymate.core.errors import HandymateError
from handymate.server.api import invoices, public_quote, quotes, system
from handymate.server.db.session import init_db
from handymate.server.settings.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Initierar databasen...")
    init_db()
    yield
    logger.info("Avslutar appen...")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# CORS – dashboarden och signeringssidan körs på egen domän
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        settings.public_app_url,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HandymateError)
async def handymate_error_handler(request: Request, exc: HandymateError):
    level = logging.ERROR if exc.http_status >= 500 else logging.WARNING
    logger.log(level, "%s %s avvisad: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# Routers
app.include_router(system.router)
app.include_router(quotes.router)          # /quotes..., kräver API-nyckel
app.include_router(invoices.router)        # /invoices..., kräver API-nyckel
app.include_router(public_quote.router)    # /quote/{token}, offentlig utan API-nyckel
