# elecciones/config.py
# Central place for thresholds and constants
import os

from dotenv import load_dotenv

load_dotenv()

# --- Storage ---
# "memory" keeps everything in-process (optionally mirrored to DATA_FILE),
# "mongo" needs a replica set because casts run inside multi-document transactions
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory")
DATA_FILE = os.getenv("DATA_FILE") or None
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/?replicaSet=rs0")
MONGO_DB = os.getenv("MONGO_DB", "elecciones")
MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))

# --- Security & JWT ---
# In production, use secure, environment-variable-based secrets
SECRET_KEY = os.getenv("SECRET_KEY", "a_very_secret_key_for_dev_only")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# --- Vote casting ---
# Only StoreUnavailable is retried, and every retry re-reads the voter first
CAST_RETRY_ATTEMPTS = int(os.getenv("CAST_RETRY_ATTEMPTS", "3"))
CAST_RETRY_WAIT_SECONDS = float(os.getenv("CAST_RETRY_WAIT_SECONDS", "0.2"))

# --- HTTP ---
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
