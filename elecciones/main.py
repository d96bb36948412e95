# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from elecciones.config import CORS_ORIGINS, LOG_LEVEL, STORAGE_BACKEND
from elecciones.database.connection import get_store
from elecciones.routes.election_routes import router as election_router
from elecciones.routes.organization_routes import auth_router
from elecciones.routes.organization_routes import router as organization_router
from elecciones.routes.vote_routes import vote_router

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    yield
    # only close a store that was actually opened
    if get_store.cache_info().currsize:
        get_store().close()


app = FastAPI(title="Elecciones - School Election API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(organization_router)
app.include_router(auth_router)
app.include_router(election_router)
app.include_router(vote_router)


@app.get("/health", tags=["General"])
def health_check():
    return {"status": "healthy", "storage": STORAGE_BACKEND}


@app.get("/", tags=["General"])
def read_root():
    return {"message": "Welcome to the Elecciones API"}
