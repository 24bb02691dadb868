"""Upload pipeline: subject -> upload slot -> signed upload -> compute.

Stages are strictly ordered and never retried. A failure in any stage
propagates immediately; vendor-side leftovers (an orphaned subject, an
unused batch) are harmless and are not rolled back.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field

from bloom.errors import (
    ComputeTriggerError,
    InvalidRequestError,
    RemoteError,
    StorageUploadError,
    SubjectCreationError,
    UploadInitError,
)
from bloom.models.haut_client import HautClient
from bloom.schemas.scan import ScanIdentifiers

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT_NAME = "Bloom Web User"
FRONT_IMAGE_NAME = "bloom_front_selfie.jpg"
SOURCE_META = {"source": "bloom-webapp"}

_DATA_URI_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class UploadDescriptor:
    """Short-lived signed storage slot issued by the vendor."""

    url: str
    method: str = "PUT"
    headers: dict[str, str] = field(default_factory=dict)


def decode_image(encoded: str) -> bytes:
    """Strip an optional ``data:image/...;base64,`` prefix and decode.

    Line breaks and missing ``=`` padding are tolerated.
    """
    payload = _WHITESPACE.sub("", _DATA_URI_PREFIX.sub("", encoded.strip(), count=1))
    payload += "=" * (-len(payload) % 4)
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidRequestError("base64Image is not valid base64") from exc


class UploadPipeline:
    def __init__(
        self,
        client: HautClient,
        company_id: str,
        dataset_id: str,
        *,
        default_subject_name: str = DEFAULT_SUBJECT_NAME,
    ) -> None:
        self.client = client
        self.company_id = company_id
        self.dataset_id = dataset_id
        self.default_subject_name = default_subject_name

    # -- stage 1 ------------------------------------------------------------

    async def create_subject(self, display_name: str | None = None) -> str:
        name = display_name if display_name and display_name.strip() else self.default_subject_name
        body = {
            "name": name,
            "age": None,
            "phenotype": None,
            "biological_sex": None,
            "meta": dict(SOURCE_META),
        }
        _, data = await self.client.request(
            f"/api/v1/companies/{self.company_id}/datasets/{self.dataset_id}/subjects/",
            "POST",
            body,
        )
        subject_id = data.get("id") if isinstance(data, dict) else None
        if subject_id is None or str(subject_id) == "":
            raise SubjectCreationError("Could not create subject in dataset", details=data)
        return str(subject_id)

    # -- stage 2 ------------------------------------------------------------

    async def initiate_upload(self, subject_id: str) -> tuple[UploadDescriptor, str]:
        body = {"front": FRONT_IMAGE_NAME, "meta": dict(SOURCE_META)}
        _, data = await self.client.request(
            f"/api/v3/companies/{self.company_id}/subjects/{subject_id}/upload/",
            "POST",
            body,
        )
        if not isinstance(data, dict):
            raise UploadInitError("Unexpected response from Haut when initiating upload", details=data)
        front = data.get("front")
        batch_id = data.get("image_batch_id")
        if not isinstance(front, dict) or not front.get("url") or not batch_id:
            raise UploadInitError("Unexpected response from Haut when initiating upload", details=data)

        descriptor = UploadDescriptor(
            url=front["url"],
            method=front.get("method") or "PUT",
            headers=dict(front.get("headers") or {}),
        )
        return descriptor, str(batch_id)

    # -- stage 3 ------------------------------------------------------------

    async def upload_bytes(self, descriptor: UploadDescriptor, content: bytes) -> int:
        """Push the image bytes to the signed URL. Returns the byte count."""
        status, text = await self.client.send_signed(
            descriptor.method, descriptor.url, descriptor.headers, content,
        )
        if not 200 <= status < 300:
            raise StorageUploadError(status, text)
        return len(content)

    # -- stage 4 ------------------------------------------------------------

    async def trigger_compute(self, batch_id: str) -> None:
        # The vendor requires app_args to be present, even when empty.
        try:
            await self.client.request(
                f"/api/v3/companies/{self.company_id}/batches/{batch_id}/compute/",
                "POST",
                {"app_args": {}},
            )
        except RemoteError as exc:
            raise ComputeTriggerError(exc.status, exc.body) from exc

    # -- whole pipeline -----------------------------------------------------

    async def run(self, encoded_image: str, display_name: str | None = None) -> ScanIdentifiers:
        # Rejects bad input before anything is created at the vendor.
        content = decode_image(encoded_image)

        logger.info("Step 1: Creating subject.")
        subject_id = await self.create_subject(display_name)

        logger.info("Step 2: Requesting upload slot for subject %s.", subject_id)
        descriptor, batch_id = await self.initiate_upload(subject_id)

        logger.info("Step 3: Uploading image for batch %s.", batch_id)
        size = await self.upload_bytes(descriptor, content)
        logger.info("Step 3: Uploaded %d bytes.", size)

        logger.info("Step 4: Triggering compute for batch %s.", batch_id)
        await self.trigger_compute(batch_id)

        return ScanIdentifiers(
            company_id=self.company_id,
            dataset_id=self.dataset_id,
            subject_id=subject_id,
            batch_id=batch_id,
            image_id=batch_id,
        )

