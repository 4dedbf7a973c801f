from supabase import create_client, Client
from storefront.config import settings
from storefront.errors import ExternalServiceError, ServiceNotConfiguredError, ValidationError
from storefront.utils.logger import integration_logger, logger
import secrets
import time

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}
MAX_IMAGE_BYTES = 5 * 1024 * 1024

_supabase_client: Client = None


def get_supabase_client() -> Client:
    global _supabase_client
    if _supabase_client:
        return _supabase_client

    url = settings.SUPABASE_URL
    key = settings.SUPABASE_SERVICE_ROLE_KEY or settings.SUPABASE_KEY

    if not url or not key:
        logger.warning("SUPABASE_URL or SUPABASE_KEY/SUPABASE_SERVICE_ROLE_KEY not set. Storage operations will fail.")
        return None

    if not settings.SUPABASE_SERVICE_ROLE_KEY:
        logger.warning("SUPABASE_SERVICE_ROLE_KEY not set. Using SUPABASE_KEY (Anon). Uploads may fail due to RLS.")

    _supabase_client = create_client(url, key)
    return _supabase_client


def validate_image(content_type: str, size: int) -> str:
    """Return the file extension for an acceptable image upload."""
    ext = ALLOWED_IMAGE_TYPES.get((content_type or "").lower())
    if not ext:
        raise ValidationError("Invalid file type. Allowed: JPEG, PNG, WebP, GIF")
    if size > MAX_IMAGE_BYTES:
        raise ValidationError("File too large. Maximum size is 5MB")
    if size == 0:
        raise ValidationError("File is empty")
    return ext


def build_object_path(folder: str, ext: str) -> str:
    folder = (folder or "products").strip("/") or "products"
    random_part = "".join(secrets.choice("abcdefghijklmnopqrstuvwxyz0123456789") for _ in range(7))
    return f"{folder}/{int(time.time() * 1000)}-{random_part}.{ext}"


def upload_image(file_bytes: bytes, content_type: str, folder: str = "products") -> dict:
    """
    Uploads an image to the storefront bucket.
    Returns {"url", "path"} where url is the public URL.
    """
    ext = validate_image(content_type, len(file_bytes))

    client = get_supabase_client()
    if not client:
        raise ServiceNotConfiguredError("Storage")

    bucket = settings.STORAGE_BUCKET
    path = build_object_path(folder, ext)
    logger.info(f"Uploading file to Supabase Storage: bucket={bucket}, path={path}, size={len(file_bytes)}")

    try:
        client.storage.from_(bucket).upload(
            path=path,
            file=file_bytes,
            file_options={"content-type": content_type, "cache-control": "3600", "upsert": "false"},
        )
        url = client.storage.from_(bucket).get_public_url(path)
    except Exception as e:
        integration_logger.log_event("storage", f"Upload failed: {path}", status="error", error=str(e))
        raise ExternalServiceError("Image upload failed", provider="storage", detail=str(e)) from e

    integration_logger.log_event("storage", f"Uploaded {path}", response_data={"url": url}, status="success")
    return {"url": url, "path": path}
