"""Fax send saga — one submission through a carrier strategy.

Direct carriers: build payload, submit, then persist the record. Nothing is
stored unless the carrier accepted the fax.

Staged carriers, five ordered steps with no compensation:
    1. persist a placeholder record in PREPARING
    2. upload every attachment to object storage
    3. persist the storage URLs, status PROCESSING
    4. submit to the carrier with the first URL
    5. persist the carrier id and the mapped status
If step k fails, the effects of steps 1..k-1 stay and the record keeps the
status of the last completed step. Such records are picked up later by the
reconciliation sweep (when they have a carrier id) or reported by it.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from app.core.exceptions import AppError, CarrierError, DatabaseError, StorageError
from app.core.logging import mask_number
from app.domain.fax_status import FaxStatus
from app.domain.models.fax_record import FaxRecord
from app.domain.repositories.fax_repository import FaxRepository
from app.domain.schemas.fax import FaxRequest
from app.infrastructure.providers.base import WORKFLOW_STAGED, FaxProvider, SubmitResult
from app.infrastructure.storage import ObjectStorage, document_key

logger = structlog.get_logger(__name__)

STEP_PREPARE = "prepare"
STEP_UPLOAD = "upload"
STEP_STAGE = "stage"
STEP_SUBMIT = "submit"
STEP_RECORD = "record"


class FaxSagaError(Exception):
    """A saga step failed. `cause` is the error to surface to the caller."""

    def __init__(
        self,
        step: str,
        cause: AppError,
        carrier_accepted: bool = False,
        fax_id: Optional[int] = None,
    ):
        self.step = step
        self.cause = cause
        self.carrier_accepted = carrier_accepted
        self.fax_id = fax_id
        cause.details.setdefault("step", step)
        if fax_id is not None:
            cause.details.setdefault("fax_id", fax_id)
        super().__init__(f"Fax saga failed at {step}: {cause.message}")


class FaxSendSaga:

    def __init__(
        self,
        provider: FaxProvider,
        fax_repo: FaxRepository,
        storage: Optional[ObjectStorage] = None,
    ):
        self.provider = provider
        self.fax_repo = fax_repo
        self.storage = storage
        self.log = logger.bind(provider=provider.name, workflow=provider.workflow)

    async def execute(self, request: FaxRequest, user_id: Optional[str]) -> FaxRecord:
        self.log.info(
            "Fax saga started",
            user_id=user_id or "anonymous",
            recipients=[mask_number(n) for n in request.recipients],
            pages=request.pages,
        )
        if self.provider.workflow == WORKFLOW_STAGED:
            return await self._run_staged(request, user_id)
        return await self._run_direct(request, user_id)

    def _base_fields(self, request: FaxRequest, user_id: Optional[str]) -> dict:
        return {
            "user_id": user_id,
            "provider": self.provider.name,
            "recipients": list(request.recipients),
            "sender_id": request.sender_id,
            "subject": request.subject or request.message,
            "pages": request.pages,
            "client_reference": request.client_reference,
        }

    def _submitted_fields(self, result: SubmitResult) -> dict:
        return {
            "provider_fax_id": result.external_id,
            "status": self.provider.map_status(result.raw_status).value,
            "original_status": result.raw_status,
            "sent_at": datetime.now(timezone.utc),
            "metadata_": {"friendly_id": result.friendly_id, "submit_response": result.response},
        }

    async def _submit(
        self,
        request: FaxRequest,
        media_url: Optional[str] = None,
        fax_id: Optional[int] = None,
    ) -> SubmitResult:
        """Build and submit. A failure here means the carrier never accepted the fax."""
        try:
            payload = self.provider.build_payload(request, media_url=media_url)
            return await self.provider.submit(payload)
        except AppError as e:
            raise FaxSagaError(STEP_SUBMIT, e, fax_id=fax_id) from e
        except Exception as e:
            self.log.exception("Unexpected carrier failure", fax_id=fax_id)
            error = CarrierError(f"{self.provider.name} submission failed: {e}", provider=self.provider.name)
            raise FaxSagaError(STEP_SUBMIT, error, fax_id=fax_id) from e

    async def _run_direct(self, request: FaxRequest, user_id: Optional[str]) -> FaxRecord:
        result = await self._submit(request)

        try:
            record = self.fax_repo.create({**self._base_fields(request, user_id), **self._submitted_fields(result)})
        except DatabaseError as e:
            # The carrier has the fax; only our copy is missing
            self.log.error("Submitted fax could not be recorded", external_id=result.external_id)
            raise FaxSagaError(STEP_RECORD, e, carrier_accepted=True) from e

        self.log.info("Fax saga completed", fax_id=record.id, external_id=result.external_id, status=record.status)
        return record

    def _note_failure(self, record: FaxRecord, error: AppError) -> None:
        """Keep the failure reason on the record without moving its status."""
        try:
            self.fax_repo.update(record, {"error_message": error.message})
        except DatabaseError:
            self.log.warning("Could not note saga failure on record", fax_id=record.id)

    async def _run_staged(self, request: FaxRequest, user_id: Optional[str]) -> FaxRecord:
        # 1. placeholder
        try:
            record = self.fax_repo.create(
                {**self._base_fields(request, user_id), "status": FaxStatus.PREPARING.value}
            )
        except DatabaseError as e:
            raise FaxSagaError(STEP_PREPARE, e) from e
        log = self.log.bind(fax_id=record.id)

        # 2. upload
        urls = []
        try:
            for index, attachment in enumerate(request.attachments, start=1):
                key = document_key(record.id, index)
                urls.append(await self.storage.put(key, attachment.content, attachment.content_type))
        except AppError as e:
            log.error("Document upload failed", uploaded=len(urls), error=e.message)
            self._note_failure(record, e)
            raise FaxSagaError(STEP_UPLOAD, e, fax_id=record.id) from e
        except Exception as e:
            log.exception("Unexpected upload failure", uploaded=len(urls))
            error = StorageError(f"Document upload failed: {e}", {"uploaded": len(urls)})
            self._note_failure(record, error)
            raise FaxSagaError(STEP_UPLOAD, error, fax_id=record.id) from e

        # 3. stage
        try:
            record = self.fax_repo.update(record, {"storage_urls": urls, "status": FaxStatus.PROCESSING.value})
        except DatabaseError as e:
            raise FaxSagaError(STEP_STAGE, e, fax_id=record.id) from e

        # 4. submit
        try:
            result = await self._submit(request, media_url=urls[0], fax_id=record.id)
        except FaxSagaError as e:
            log.error("Carrier rejected staged fax", error=e.cause.message)
            self._note_failure(record, e.cause)
            raise

        # 5. record the carrier id
        try:
            record = self.fax_repo.update(record, self._submitted_fields(result))
        except DatabaseError as e:
            log.error("Submitted fax could not be updated", external_id=result.external_id)
            raise FaxSagaError(STEP_RECORD, e, carrier_accepted=True, fax_id=record.id) from e

        log.info("Fax saga completed", external_id=result.external_id, status=record.status)
        return record
