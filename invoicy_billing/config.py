import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Database
# DATABASE_URL connects with the application role (row-level security enforced).
# SERVICE_DATABASE_URL connects with the elevated role used for privileged writes.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./invoicy_billing.db")
SERVICE_DATABASE_URL = os.getenv("SERVICE_DATABASE_URL") or DATABASE_URL

# Firebase Configuration (caller identity)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Stripe Configuration
STRIPE_API_KEY = os.getenv("STRIPE_API_KEY")
STRIPE_WEBHOOK_SIGNING_SECRET = os.getenv("STRIPE_WEBHOOK_SIGNING_SECRET")
STRIPE_TIMEOUT_SECONDS = int(os.getenv("STRIPE_TIMEOUT_SECONDS", "30"))

# Fraction of every routed payment retained by the platform
PLATFORM_FEE_RATE = os.getenv("PLATFORM_FEE_RATE", "0.03")

# Frontend base URL for redirects (payment success, onboarding settings page)
APP_URL = os.getenv("APP_URL", "http://localhost:5173").rstrip("/")

# Recurring invoices
# Bearer token required by the internal HTTP trigger; the arq cron does not need it
SCHEDULER_TRIGGER_TOKEN = os.getenv("SCHEDULER_TRIGGER_TOKEN")
RECURRENCE_LEASE_TTL_SECONDS = int(os.getenv("RECURRENCE_LEASE_TTL_SECONDS", "600"))
RECURRENCE_DUE_DAYS = int(os.getenv("RECURRENCE_DUE_DAYS", "30"))
