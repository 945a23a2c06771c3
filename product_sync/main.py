from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from product_sync.api.v1.endpoints.sync import cron_router, router as sync_router
from product_sync.db.session import init_db

_logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    _logger.info("Database tables ready")
    yield


app = FastAPI(title="Product Price Sync", lifespan=lifespan)

origins = [
    "http://localhost",
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sync_router, prefix="/api/v1")
app.include_router(cron_router)


@app.get("/health")
def health():
    return {"status": "ok"}
