import io
import logging
import os
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from PIL import Image, UnidentifiedImageError
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import CLOUDFLARE_ACCOUNT_ID, MAX_UPLOAD_BYTES, MAX_UPLOAD_SIZE_MB, R2_BUCKET, SIGNED_URL_EXPIRES
from app.services.errors import InternalError, InvalidState


logger = logging.getLogger(__name__)

URL = f"https://{CLOUDFLARE_ACCOUNT_ID}.r2.cloudflarestorage.com"

CONTENT_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "HEIF": "image/heif",
}


@lru_cache(maxsize=1)
def get_s3():
    return boto3.client(
        service_name="s3",
        endpoint_url=URL,
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        region_name="auto",
    )


def validate_image(data: bytes) -> str:
    """Check the upload is a readable image within the size limit.

    Returns the content type to store it with.
    """
    if len(data) > MAX_UPLOAD_BYTES:
        raise InvalidState(f"Image exceeds {MAX_UPLOAD_SIZE_MB}MB limit")

    try:
        img = Image.open(io.BytesIO(data))
        img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise InvalidState("Only image files are allowed")

    return CONTENT_TYPES.get(img.format, "application/octet-stream")


def upload_image(data: bytes, original_name: str, folder: str) -> str:
    content_type = validate_image(data)

    base = os.path.splitext(os.path.basename(original_name or "image"))[0]
    ext = content_type.rsplit("/", 1)[-1]
    ts = int(datetime.now(timezone.utc).timestamp())
    key = f"{folder}/{base}-{ts}-{uuid.uuid4().hex[:8]}.{ext}"

    try:
        get_s3().upload_fileobj(
            io.BytesIO(data),
            R2_BUCKET,
            key,
            ExtraArgs={"ContentType": content_type},
        )
    except (BotoCoreError, ClientError) as e:
        logger.error("Upload of %s failed: %s", key, e)
        raise InternalError("Failed to upload image. Please try again.")

    return key


def generate_signed_url(key: str, expires_in=SIGNED_URL_EXPIRES):
    if not key:
        return None

    try:
        return get_s3().generate_presigned_url(
                "get_object",
                Params={"Bucket": R2_BUCKET, "Key": key},
                ExpiresIn=expires_in
            )
    except (BotoCoreError, ClientError) as e:
        logger.warning("Error generating signed URL for %s: %s", key, e)
        return None


def delete_s3_object(key: str):
    try:
        get_s3().delete_object(Bucket=R2_BUCKET, Key=key)
    except (BotoCoreError, ClientError) as e:
        logger.warning("Error deleting S3 object %s: %s", key, e)


def sign_item(item) -> dict:
    data = item.model_dump()
    data["images"] = [generate_signed_url(key) for key in item.images or []]
    data["type"] = item.item_type.value
    return data


def get_all_urls(db_items: list):
    return [sign_item(item) for item in db_items]
