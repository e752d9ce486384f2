"""
Platform configuration
All settings come from the environment (a local .env file is loaded first)
"""

import os
from dotenv import load_dotenv

load_dotenv()

# Database
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "elearn_db")

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_ALGORITHM = "HS256"
TOKEN_EXPIRY_DAYS = int(os.getenv("TOKEN_EXPIRY_DAYS", "30"))

# Payment gateway
PAYSTACK_BASE_URL = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
PAYSTACK_SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY", "")
PAYSTACK_TIMEOUT_SECONDS = 30
PAYMENT_CURRENCY = "NGN"

# Share of every sale kept by the platform; tutors receive the rest
PLATFORM_CHARGE_RATE = float(os.getenv("PLATFORM_CHARGE_RATE", "0.1"))

# Mail
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_USER = os.getenv("EMAIL_USER", "")
EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD", "")
MAIL_SENDER = "TECHWARE SERVICES <info@techware.ng>"

# Object storage (S3 compatible)
STORAGE_ENDPOINT = os.getenv("STORAGE_ENDPOINT", "s3.amazonaws.com")
STORAGE_ACCESS_KEY = os.getenv("STORAGE_ACCESS_KEY", "")
STORAGE_SECRET_KEY = os.getenv("STORAGE_SECRET_KEY", "")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "elearn-media")
STORAGE_REGION = os.getenv("STORAGE_REGION", "us-east-1")
STORAGE_SECURE = os.getenv("STORAGE_SECURE", "true").lower() == "true"

# Frontend links placed in emails
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000")
STUDENT_FRONTEND_HOST = os.getenv("STUDENT_FRONTEND_HOST", "http://localhost:3000")
ADMIN_HOST_FRONTEND = os.getenv("ADMIN_HOST_FRONTEND", "http://localhost:3001/")

# Default admin created on first boot
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@techware.ng")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

# Fraction of a video's duration that counts as watched
VIDEO_COMPLETION_THRESHOLD = float(os.getenv("VIDEO_COMPLETION_THRESHOLD", "1.0"))

# Token lifetimes
VERIFICATION_TOKEN_TTL_MINUTES = 60
REGISTRATION_TOKEN_TTL_MINUTES = 60
RESET_PIN_TTL_MINUTES = 10

# Pagination
DEFAULT_PAGE_SIZE = 10

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
