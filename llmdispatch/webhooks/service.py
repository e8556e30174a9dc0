"""Webhook receiver: completes background jobs from provider callbacks."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from pymongo.errors import DuplicateKeyError

from llmdispatch.core.database import Database
from llmdispatch.core.exceptions import BadRequestException
from llmdispatch.jobs.models import JobStatus, is_terminal
from llmdispatch.jobs.service import JobStore
from llmdispatch.llm.errors import LLMError
from llmdispatch.llm.types import LLMErrorCode, ProviderSlug
from llmdispatch.notifications.models import NotificationType
from llmdispatch.notifications.service import NotificationService
from llmdispatch.providers.service import ProviderRegistry
from llmdispatch.webhooks import payloads
from llmdispatch.webhooks.signatures import detect_provider, is_fresh, verify_signature, webhook_timestamp
from llmdispatch.worker.engine import apply_failure

logger = logging.getLogger(__name__)

# Statuses a webhook may complete from
AWAITING_STATUSES = (JobStatus.WAITING_LLM, JobStatus.RUNNING)


class WebhookLog:
    """Bookkeeping collections: delivery dedup, diagnostics and dead letters."""

    @staticmethod
    def _events():
        return Database.get_collection("llm_webhook_events")

    @staticmethod
    def _diagnostics():
        return Database.get_collection("llm_webhook_diagnostics")

    @staticmethod
    def _dlq():
        return Database.get_collection("llm_webhook_dlq")

    async def record_delivery(self, webhook_id: str, job_id: str, provider: ProviderSlug, event_type: str) -> bool:
        """False when this webhook id was already recorded."""
        try:
            await self._events().insert_one(
                {
                    "_id": webhook_id,
                    "job_id": job_id,
                    "provider_slug": provider.value,
                    "event_type": event_type,
                    "received_at": datetime.now(timezone.utc),
                }
            )
        except DuplicateKeyError:
            return False
        return True

    async def release_delivery(self, webhook_id: str) -> None:
        """Forget a delivery so the provider's redelivery is processed again."""
        try:
            await self._events().delete_one({"_id": webhook_id})
        except Exception as e:
            logger.error(f"Failed to release webhook delivery {webhook_id}: {e}")

    async def diagnostic(self, event_type: str, **fields: Any) -> None:
        try:
            await self._diagnostics().insert_one(
                {"event_type": event_type, "created_at": datetime.now(timezone.utc), **fields}
            )
        except Exception as e:
            logger.error(f"Failed to record webhook diagnostic {event_type}: {e}")

    async def dead_letter(self, job_id: str, provider: ProviderSlug, payload: dict, message: str) -> None:
        try:
            await self._dlq().insert_one(
                {
                    "job_id": job_id,
                    "provider_slug": provider.value,
                    "payload": payload,
                    "error_code": "PROCESSING_FAILED",
                    "error_message": message,
                    "created_at": datetime.now(timezone.utc),
                }
            )
        except Exception as e:
            logger.error(f"Failed to dead-letter webhook for job {job_id}: {e}")


def _ack(result: str, **extra: Any) -> Dict[str, Any]:
    return {"received": True, "result": result, **extra}


class WebhookReceiver:
    def __init__(
        self,
        store: JobStore,
        registry: ProviderRegistry,
        notifier: NotificationService,
        log: WebhookLog,
    ):
        self.store = store
        self.registry = registry
        self.notifier = notifier
        self.log = log

    async def handle(
        self, query_provider: Optional[str], headers: Mapping[str, str], raw_body: bytes
    ) -> Dict[str, Any]:
        """
        Authenticate and apply one webhook delivery.

        Authentication and payload-shape failures raise 400 before anything
        is written. Once authenticated, every outcome is acknowledged with
        200 so the provider stops redelivering.
        """
        provider = detect_provider(query_provider, headers)
        if provider is None:
            raise BadRequestException("Unable to determine webhook provider")

        if not verify_signature(provider, headers, raw_body):
            logger.warning(f"Invalid webhook signature for provider {provider.value}")
            raise BadRequestException("Invalid webhook signature", code="INVALID_SIGNATURE")

        try:
            payload = json.loads(raw_body)
        except ValueError:
            raise BadRequestException("Invalid JSON body")
        if not isinstance(payload, dict):
            raise BadRequestException("Webhook payload must be a JSON object")

        if not is_fresh(webhook_timestamp(payload)):
            raise BadRequestException("Webhook timestamp missing or outside tolerance", code="STALE_WEBHOOK")

        job_id = payloads.extract_job_id(payload, provider)
        if not job_id:
            raise BadRequestException("No job_id in webhook payload metadata")

        webhook_id = payloads.delivery_id(payload)
        if not webhook_id:
            raise BadRequestException("No webhook id in payload")

        return await self._apply(provider, payload, job_id, webhook_id)

    async def _apply(self, provider: ProviderSlug, payload: dict, job_id: str, webhook_id: str) -> Dict[str, Any]:
        received_id = payloads.response_id(payload)
        job = await self.store.get(job_id)

        if job is None:
            logger.info(f"Webhook for unknown job {job_id}")
            await self.log.diagnostic(
                "unknown_job",
                job_id=job_id,
                provider_slug=provider.value,
                error_message="Webhook received for non-existent job",
            )
            return _ack("ignored", reason="unknown_job")

        context = {"job_id": job_id, "provider_slug": provider.value, "customer_id": job.get("customer_id")}
        status = job.get("status")

        if status == JobStatus.CANCELLED.value:
            logger.info(f"Ignoring webhook for cancelled job {job_id}")
            await self.log.diagnostic("cancelled_job_response", job_status_at_receipt=status, **context)
            return _ack("ignored", reason="cancelled")

        if is_terminal(status):
            failure = payloads.classify(payload) == payloads.WebhookOutcome.FAILURE
            event = "late_failure_response" if failure else "late_success_ignored"
            logger.info(f"Ignoring webhook for terminal job {job_id} (status: {status})")
            await self.log.diagnostic(event, job_status_at_receipt=status, **context)
            return _ack("ignored", reason="terminal")

        expected_id = job.get("llm_response_id")
        if expected_id and received_id and expected_id != received_id:
            logger.info(f"Stale response for job {job_id}: expected {expected_id}, got {received_id}")
            await self.log.diagnostic(
                "stale_response",
                job_status_at_receipt=status,
                expected_response_id=expected_id,
                received_response_id=received_id,
                **context,
            )
            return _ack("ignored", reason="stale_response")

        event_type = str(payload.get("type") or payload.get("object") or "")
        if not await self.log.record_delivery(webhook_id, job_id, provider, event_type):
            logger.info(f"Duplicate webhook {webhook_id} for job {job_id}")
            await self.log.diagnostic(
                "duplicate_webhook",
                received_response_id=webhook_id,
                error_message="Webhook already processed (idempotency check)",
                **context,
            )
            return _ack("ignored", reason="duplicate")

        try:
            return await self._process(provider, payload, job)
        except Exception as e:
            message = f"{type(e).__name__}: {e}"
            logger.exception(f"Webhook processing failed for job {job_id}, adding to DLQ")
            await self.log.diagnostic(
                "processing_error",
                error_code="PROCESSING_FAILED",
                error_message=message,
                job_status_at_receipt=status,
                **context,
            )
            await self.log.dead_letter(job_id, provider, payload, message)
            await self.log.release_delivery(webhook_id)
            return _ack("dead_lettered")

    async def _process(self, provider: ProviderSlug, payload: dict, job: dict) -> Dict[str, Any]:
        job_id = job["job_id"]
        outcome = payloads.classify(payload)

        if outcome == payloads.WebhookOutcome.FAILURE:
            error = LLMError(
                payloads.error_message(payload),
                LLMErrorCode.PROVIDER_UNAVAILABLE,
                provider,
                retryable=True,
            )
            config = await self.registry.get_by_id(job.get("provider_id") or "")
            result = await apply_failure(self.store, self.notifier, job, config, error, expected=AWAITING_STATUSES)
            return _ack(result.status)

        if outcome == payloads.WebhookOutcome.UNKNOWN:
            logger.info(f"Unhandled webhook event type for job {job_id}: {payload.get('type') or payload.get('object')}")
            return _ack("ignored", reason="unhandled_event")

        result = payloads.extract_result(payload, provider)
        completed = await self.store.mark_completed(job_id, result, expected=AWAITING_STATUSES)
        if completed is None:
            logger.info(f"Job {job_id} changed state before webhook completion; discarding result")
            return _ack("skipped")

        logger.info(f"Job {job_id} completed via {provider.value} webhook")
        await self.notifier.notify_job_event(NotificationType.JOB_COMPLETED, completed)
        return _ack(JobStatus.COMPLETED.value)
