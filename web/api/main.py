"""FastAPI example server for httpauth."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from web.api.auth_routes import router as auth_router
from web.auth import backend, init_auth


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_auth()
    yield
    await backend.close()


app = FastAPI(title="httpauth example server", lifespan=lifespan)
app.include_router(auth_router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
