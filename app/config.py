import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./lostfound.db")

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = "HS256"

# Object storage (Cloudflare R2, S3 compatible)
R2_BUCKET = os.getenv("R2_BUCKET")
CLOUDFLARE_ACCOUNT_ID = os.getenv("CLOUDFLARE_ACCOUNT_ID")
SIGNED_URL_EXPIRES = int(os.getenv("SIGNED_URL_EXPIRES", "3600"))

MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "5"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024
MAX_ITEM_IMAGES = 5

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Point awards
CLAIM_APPROVAL_POINTS = int(os.getenv("CLAIM_APPROVAL_POINTS", "20"))
FOUND_ITEM_POINTS = int(os.getenv("FOUND_ITEM_POINTS", "10"))
