# marketplace/app/security/uploads.py
"""
Image upload validation and storage.

Checks, in order:
- number of files (MAX_FILES_PER_UPLOAD)
- file name (no path components, no "..")
- MIME type against ALLOWED_FILE_TYPES
- extension against the image allow-list (catches "shell.php.png" tricks
  only together with the MIME check, so both are required)
- size (MAX_FILE_SIZE)

Accepted files are written to UPLOAD_DIR/YYYY/MM/DD/ under a sanitized name
with a random suffix; the original name is never used as a path.
"""
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import List, Optional, Sequence

from fastapi import HTTPException, UploadFile, status

from marketplace.app.core.config import settings

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9가-힣_-]")
MAX_STEM_LENGTH = 50


@dataclass
class StoredFile:
    path: Path
    url: str


def _reject(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def upload_root() -> Path:
    return Path(settings.UPLOAD_DIR).resolve()


def sanitize_filename(filename: str) -> str:
    """Keep a readable stem, drop everything unsafe, append a random suffix."""
    path = PurePosixPath(filename)
    ext = path.suffix.lower()
    stem = UNSAFE_NAME_CHARS.sub("_", path.stem)[:MAX_STEM_LENGTH]
    return f"{stem}_{secrets.token_hex(8)}{ext}"


def validate_upload(upload: UploadFile) -> None:
    filename = upload.filename or ""
    if not filename or ".." in filename or "/" in filename or "\\" in filename:
        raise _reject("Invalid file name.")

    if upload.content_type not in settings.allowed_file_types:
        raise _reject(f"File type not allowed. ({upload.content_type})")

    ext = PurePosixPath(filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise _reject(f"File extension not allowed. ({ext or 'none'})")


def dated_directory(root: Path, now: Optional[datetime] = None) -> Path:
    now = now or datetime.now(timezone.utc)
    return root / f"{now.year:04d}" / f"{now.month:02d}" / f"{now.day:02d}"


async def save_uploads(uploads: Sequence[UploadFile]) -> List[StoredFile]:
    if not uploads:
        raise _reject("No files were uploaded.")
    if len(uploads) > settings.MAX_FILES_PER_UPLOAD:
        raise _reject(f"Too many files. (max {settings.MAX_FILES_PER_UPLOAD})")

    for upload in uploads:
        validate_upload(upload)

    root = upload_root()
    target_dir = dated_directory(root)
    target_dir.mkdir(parents=True, exist_ok=True)

    stored: List[StoredFile] = []
    try:
        for upload in uploads:
            content = await upload.read(settings.MAX_FILE_SIZE + 1)
            if len(content) > settings.MAX_FILE_SIZE:
                raise _reject(
                    f"File is too large. (max {settings.MAX_FILE_SIZE // (1024 * 1024)}MB)"
                )

            path = target_dir / sanitize_filename(upload.filename)
            path.write_bytes(content)
            relative = path.relative_to(root).as_posix()
            stored.append(StoredFile(path=path, url=f"/uploads/{relative}"))
    except BaseException:
        for item in stored:
            delete_file(item.path)
        raise

    return stored


def delete_file(file_path) -> bool:
    """Remove a stored upload; refuses anything outside UPLOAD_DIR."""
    root = upload_root()
    path = Path(file_path).resolve()
    if root != path and root not in path.parents:
        logger.warning("Refusing to delete %s outside of %s", path, root)
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
