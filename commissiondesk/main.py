"""FastAPI entry point for the commission desk."""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response

from commissiondesk import __version__
from commissiondesk.database import init_db
from commissiondesk.routers import commission


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(title="Commission Desk", version=__version__, lifespan=lifespan)

app.include_router(commission.router)


@app.get("/health")
def health() -> Response:
    """Simple health endpoint for load balancers and platform checks."""
    return Response(content='{"status":"ok"}', media_type="application/json")
