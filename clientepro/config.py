import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Core backend (appointments, customers, team) - the engine only talks to it over HTTP
CORE_API_URL = os.getenv("CORE_API_URL", "http://localhost:3001/api").rstrip("/")
CORE_API_TIMEOUT = float(os.getenv("CORE_API_TIMEOUT", "15"))

# Public app URL, used for invoice links when the backend does not return one
APP_URL = os.getenv("APP_URL", "http://localhost:5174").rstrip("/")

# Frontend base URL for CORS
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
