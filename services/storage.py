import os
import uuid

from fastapi import UploadFile

from config import settings
from errors import ValidationFailed

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".webp"}
ALLOWED_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}


def store_upload(file: UploadFile) -> str:
    """Saves an uploaded image under UPLOAD_DIR and returns its public path."""
    ext = os.path.splitext(file.filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS or file.content_type not in ALLOWED_TYPES:
        raise ValidationFailed("Only image files are allowed")

    data = file.file.read()
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise ValidationFailed("Image must be 5MB or smaller")

    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    filename = f"{uuid.uuid4().hex}{ext}"
    with open(os.path.join(settings.UPLOAD_DIR, filename), "wb") as fh:
        fh.write(data)
    return f"/uploads/{filename}"
