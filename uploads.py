import logging
import os
import re
import secrets
import time
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, List, Optional, Protocol

from errors import ValidationError
from schemas import DEFAULT_LOGO

logger = logging.getLogger(__name__)

ALLOWED_TYPES = re.compile(r"jpeg|jpg|png|gif")
CHUNK_SIZE = 64 * 1024


class Upload(Protocol):
    """What we need from an uploaded file (starlette's UploadFile fits)."""

    filename: Optional[str]
    content_type: Optional[str]
    file: BinaryIO


class AssetStore:
    """Image files on disk, referenced from documents as ``<prefix>/<name>``."""

    def __init__(self, upload_dir: Path, url_prefix: str = "/uploads", max_bytes: int = 5 * 1024 * 1024):
        self.upload_dir = Path(upload_dir).resolve()
        self.url_prefix = "/" + url_prefix.strip("/")
        self.max_bytes = max_bytes
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def check_type(self, upload: Upload) -> str:
        ext = os.path.splitext(upload.filename or "")[1].lower()
        mimetype = (upload.content_type or "").lower()
        if not (ALLOWED_TYPES.search(ext) and ALLOWED_TYPES.search(mimetype)):
            raise ValidationError("Images only! Allowed types: jpeg, jpg, png, gif")
        return ext

    def save(self, upload: Upload, field: str) -> str:
        ext = self.check_type(upload)
        name = f"{field}-{int(time.time() * 1000)}-{secrets.token_hex(4)}{ext}"
        target = self.upload_dir / name
        written = 0
        try:
            with open(target, "wb") as out:
                while True:
                    chunk = upload.file.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_bytes:
                        break
                    out.write(chunk)
        except BaseException:
            # never registered with a batch, so nothing else would remove it
            target.unlink(missing_ok=True)
            raise
        if written > self.max_bytes:
            target.unlink()
            raise ValidationError(
                f"File {upload.filename} is too large (limit {self.max_bytes // (1024 * 1024)}MB)"
            )
        logger.info("Saved upload %s (%d bytes)", name, written)
        return f"{self.url_prefix}/{name}"

    def resolve(self, path: str) -> Optional[Path]:
        """Map a stored reference to a file inside the uploads directory."""
        if not path or path == DEFAULT_LOGO:
            return None
        name = path
        if name.startswith(self.url_prefix + "/"):
            name = name[len(self.url_prefix) + 1:]
        full = (self.upload_dir / name.lstrip("/")).resolve()
        if self.upload_dir not in full.parents:
            logger.warning("Refusing to touch %s: outside %s", path, self.upload_dir)
            return None
        return full

    def exists(self, path: str) -> bool:
        full = self.resolve(path)
        return full is not None and full.is_file()

    def delete(self, path: str) -> None:
        full = self.resolve(path)
        if full is None:
            return
        try:
            full.unlink()
            logger.info("Deleted file: %s", full)
        except FileNotFoundError:
            logger.warning("File not found for deletion (already deleted or path incorrect): %s", full)
        except OSError:
            logger.exception("Error deleting file %s", full)

    def delete_many(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.delete(path)

    @contextmanager
    def track(self) -> Iterator["UploadBatch"]:
        """Scope the assets touched by one request.

        New files are removed if the block raises; assets passed to
        ``UploadBatch.retire`` are removed only if it completes.
        """
        batch = UploadBatch(self)
        try:
            yield batch
        except BaseException:
            batch.rollback()
            raise
        batch.commit()


class UploadBatch:
    def __init__(self, store: AssetStore):
        self.store = store
        self.saved: List[str] = []
        self.retired: List[str] = []

    def save(self, upload: Upload, field: str) -> str:
        path = self.store.save(upload, field)
        self.saved.append(path)
        return path

    def save_all(self, uploads: Iterable[Upload], field: str) -> List[str]:
        return [self.save(upload, field) for upload in uploads]

    def retire(self, paths: Iterable[str]) -> None:
        self.retired.extend(p for p in paths if p)

    def rollback(self) -> None:
        if self.saved:
            logger.info("Removing %d orphaned upload(s)", len(self.saved))
        self.store.delete_many(self.saved)
        self.saved = []

    def commit(self) -> None:
        self.store.delete_many(self.retired)
        self.saved = []
        self.retired = []
