# =============================================================================
# core/services/asset_migration.py - Inline Image Migration
# =============================================================================
# Moves inline base64 images (data:image/<subtype>;base64,...) out of
# records and into object storage, rewriting each slot to the public URL.
#
# - Every known image location of a record is visited (iter_image_slots).
# - Byte-identical payloads are uploaded once per process (UploadCache).
# - Work happens on a deep copy: if any upload fails the whole record is
#   abandoned and the caller's object is untouched. Uploads that succeeded
#   before the failure stay cached, so a retry only uploads what is left.
#
# strip_inline_images() builds the "light" inspection kept in the local
# cache: inline payloads dropped, photo counts recorded.
# =============================================================================

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterator, TypeVar

from app.exceptions import AssetMigrationError, StorageUploadError
from core.models.dispatch import Job
from core.models.inspection import CleaningInspection, PropertyTemplate
from core.services.storage_service import StorageService
from lib.utils import random_suffix

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", CleaningInspection, PropertyTemplate, Job)

INLINE_IMAGE = re.compile(r"^data:image/([a-zA-Z0-9.+-]+);base64,", re.IGNORECASE)

_EXTENSIONS = {
    "jpeg": "jpg",
    "pjpeg": "jpg",
    "svg+xml": "svg",
    "x-icon": "ico",
    "vnd.microsoft.icon": "ico",
}

_SCOPE_UNSAFE = re.compile(r"[^a-z0-9_-]+")


def is_inline_image(value: Any) -> bool:
    return isinstance(value, str) and INLINE_IMAGE.match(value) is not None


def decode_inline_image(value: str) -> tuple[bytes, str, str]:
    """
    Split a data URI into (bytes, mime type, file extension).

    Raises:
        ValueError: The value is not an inline image or the payload is not base64
    """
    match = INLINE_IMAGE.match(value)
    if match is None:
        raise ValueError("not an inline image")
    subtype = match.group(1).lower()
    payload = "".join(value[match.end():].split())
    try:
        data = base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid base64 payload: {e}") from e
    extension = _EXTENSIONS.get(subtype, _SCOPE_UNSAFE.sub("", subtype) or "bin")
    return data, f"image/{subtype}", extension


def sanitize_scope(scope: str) -> str:
    """Lowercase, path-safe object prefix ('Inspection insp/1' -> 'inspection-insp-1')."""
    return _SCOPE_UNSAFE.sub("-", scope.lower()).strip("-") or "asset"


# =============================================================================
# Upload Cache
# =============================================================================

class UploadCache:
    """
    Content-keyed map of already uploaded images.

    Keyed by (storage location, SHA-256 of the decoded bytes), the location
    being the project storage URL plus bucket, so pointing the runtime config
    at another project misses the cache. Values are public URLs. One instance
    is shared by the whole process.
    """

    def __init__(self):
        self._urls: dict[tuple[str, str], str] = {}

    @staticmethod
    def digest(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    def get(self, location: str, digest: str) -> str | None:
        return self._urls.get((location, digest))

    def put(self, location: str, digest: str, url: str) -> None:
        self._urls[(location, digest)] = url

    def clear(self) -> None:
        self._urls.clear()

    def __len__(self) -> int:
        return len(self._urls)


upload_cache = UploadCache()


# =============================================================================
# Image Slots
# =============================================================================

@dataclass
class ImageSlot:
    """One image location: an attribute, or an index inside a list attribute."""

    owner: Any
    field: str
    index: int | None = None

    def get(self) -> Any:
        value = getattr(self.owner, self.field)
        return value if self.index is None else value[self.index]

    def set(self, value: str) -> None:
        if self.index is None:
            setattr(self.owner, self.field, value)
        else:
            getattr(self.owner, self.field)[self.index] = value


def _list_slots(owner: Any, field: str) -> Iterator[ImageSlot]:
    for index in range(len(getattr(owner, field) or [])):
        yield ImageSlot(owner, field, index)


def iter_image_slots(record: CleaningInspection | PropertyTemplate | Job) -> Iterator[ImageSlot]:
    """Yield every location of a record that may hold an image."""
    if isinstance(record, CleaningInspection):
        yield from _list_slots(record, "property_note_images")
        for section in record.sections:
            for reference in section.reference_images:
                yield ImageSlot(reference, "image")
            yield from _list_slots(section, "photos")
            for item in section.checklist:
                yield ImageSlot(item, "photo")
        for report in record.damage_reports:
            yield ImageSlot(report, "photo")
        for evidence in (record.check_in, record.check_out):
            if evidence is not None:
                yield ImageSlot(evidence, "photo")
    elif isinstance(record, PropertyTemplate):
        yield from _list_slots(record, "note_images")
        for section_id in sorted(record.reference_images):
            for reference in record.reference_images[section_id]:
                yield ImageSlot(reference, "image")
    elif isinstance(record, Job):
        yield from _list_slots(record, "image_urls")
    else:
        raise TypeError(f"Unsupported record type: {type(record).__name__}")


# =============================================================================
# Pipeline
# =============================================================================

@dataclass
class MigrationResult(Generic[RecordT]):
    """Migrated copy of a record plus what happened to it."""

    record: RecordT
    uploaded_count: int
    changed: bool


class AssetMigrationPipeline:
    """
    Rewrites inline images of a record to storage URLs.

    Example:
        pipeline = AssetMigrationPipeline(StorageService(client, "inspection-assets"))
        result = await pipeline.migrate_inspection(inspection)
        if result.changed:
            await save(result.record)
    """

    def __init__(
        self,
        storage: StorageService,
        cache: UploadCache | None = None,
        *,
        clock: Callable[[], int] | None = None,
        suffix: Callable[[], str] | None = None,
    ):
        self.storage = storage
        self.cache = cache if cache is not None else upload_cache
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._suffix = suffix or random_suffix

    def object_path(self, scope: str, index: int, extension: str) -> str:
        """<sanitized-scope>/<epoch-ms>-<index>-<random6>.<ext>"""
        return f"{sanitize_scope(scope)}/{self._clock()}-{index}-{self._suffix()}.{extension}"

    async def migrate_inspection(self, record: CleaningInspection) -> MigrationResult[CleaningInspection]:
        return await self._migrate(record, f"inspection-{record.id}")

    async def migrate_property_template(self, record: PropertyTemplate) -> MigrationResult[PropertyTemplate]:
        return await self._migrate(record, f"property-{record.id}")

    async def migrate_job(self, record: Job) -> MigrationResult[Job]:
        return await self._migrate(record, f"job-{record.id}")

    async def _migrate(self, record: RecordT, scope: str) -> MigrationResult[RecordT]:
        """
        Migrate one record.

        Raises:
            AssetMigrationError: An image could not be decoded or uploaded; the
                input record is unchanged
        """
        working = record.model_copy(deep=True)
        uploaded = 0
        rewritten = 0

        for index, slot in enumerate(iter_image_slots(working)):
            value = slot.get()
            if not is_inline_image(value):
                continue

            try:
                data, content_type, extension = decode_inline_image(value)
            except ValueError as e:
                raise AssetMigrationError(record.id, str(e)) from e

            digest = self.cache.digest(data)
            location = self.storage.location
            url = self.cache.get(location, digest) if location else None
            if url is None:
                path = self.object_path(scope, index, extension)
                try:
                    url = await self.storage.upload_image(path, data, content_type)
                except StorageUploadError as e:
                    logger.error(f"Asset migration aborted for {record.id}: {e.message}")
                    raise AssetMigrationError(record.id, e.message) from e
                if location:
                    self.cache.put(location, digest, url)
                uploaded += 1

            slot.set(url)
            rewritten += 1

        if rewritten:
            logger.info(f"Migrated {rewritten} inline image(s) of {scope} ({uploaded} uploaded)")
        return MigrationResult(record=working, uploaded_count=uploaded, changed=rewritten > 0)


# =============================================================================
# Light Variant
# =============================================================================

def strip_inline_images(record: CleaningInspection) -> CleaningInspection:
    """
    Light copy of an inspection for the local cache.

    Inline payloads are removed (storage URLs are kept), each section records
    how many photos it had and the record records the total.
    """
    light = record.model_copy(deep=True)
    light.property_note_images = [img for img in light.property_note_images if not is_inline_image(img)]

    total = 0
    for section in light.sections:
        count = max(section.photo_count or 0, len(section.photos))
        section.photo_count = count
        total += count
        section.photos = [photo for photo in section.photos if not is_inline_image(photo)]
        section.reference_images = [ref for ref in section.reference_images if not is_inline_image(ref.image)]
        for item in section.checklist:
            if is_inline_image(item.photo):
                item.photo = None

    for report in light.damage_reports:
        if is_inline_image(report.photo):
            report.photo = ""
    for evidence in (light.check_in, light.check_out):
        if evidence is not None and is_inline_image(evidence.photo):
            evidence.photo = None

    light.photo_count = total
    return light


def has_inline_images(record: CleaningInspection | PropertyTemplate | Job) -> bool:
    return any(is_inline_image(slot.get()) for slot in iter_image_slots(record))
