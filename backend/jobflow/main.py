import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jobflow.config import settings
from jobflow.middleware.exceptions import register_exception_handlers
from jobflow.routers import health, invoices, job_cards, products, requisitions, timesheets
from jobflow.services.scheduler import lifespan

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="JobFlow",
    description="Garage job execution, parts disbursement and invoicing",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(job_cards.router, prefix="/api/job-cards", tags=["job-cards"])
app.include_router(requisitions.router, prefix="/api/requisitions", tags=["requisitions"])
app.include_router(timesheets.router, prefix="/api/timesheets", tags=["timesheets"])
app.include_router(invoices.router, prefix="/api/invoices", tags=["invoices"])
app.include_router(products.router, prefix="/api/products", tags=["products"])
