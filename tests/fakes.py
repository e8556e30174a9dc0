"""In-memory stand-ins for the Mongo-backed collaborators."""

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

from bson import ObjectId

from llmdispatch.auth.models import AuthUser
from llmdispatch.jobs.models import CANCELLABLE_STATUSES, CANCELLED_MESSAGE, JobStatus
from llmdispatch.jobs.service import JobStore
from llmdispatch.llm.types import LLMResult, LLMUsage, ProviderSlug
from llmdispatch.notifications.models import NotificationCreate, NotificationResponse
from llmdispatch.notifications.service import NotificationService
from llmdispatch.providers.models import ProviderConfig
from llmdispatch.providers.service import ProviderRegistry
from llmdispatch.rate_limit.models import RateLimitResult
from llmdispatch.rate_limit.service import RateLimiter, window_bounds
from llmdispatch.webhooks.service import WebhookLog

CUSTOMER_ID = "cust-1"
OTHER_CUSTOMER_ID = "cust-2"
USER = AuthUser(user_id="user-1", email="dev@example.com", customer_id=CUSTOMER_ID)

OPENAI = ProviderConfig(
    id="prov-openai",
    slug=ProviderSlug.OPENAI,
    name="OpenAI",
    timeout_seconds=60,
    max_retries=3,
    retry_delay_seconds=1,
    config={"model": "gpt-4o", "profiles": {"summarize": "gpt-4o-mini"}},
)
ANTHROPIC = ProviderConfig(
    id="prov-anthropic",
    slug=ProviderSlug.ANTHROPIC,
    name="Anthropic",
    timeout_seconds=60,
    max_retries=2,
)
GEMINI = ProviderConfig(
    id="prov-gemini",
    slug=ProviderSlug.GEMINI,
    name="Google Gemini",
    is_active=False,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FakeJobStore(JobStore):
    """JobStore with the Mongo calls replaced by a dict; guards behave the same."""

    def __init__(self):
        self.jobs: Dict[str, dict] = {}

    def add(self, **fields) -> dict:
        now = _now()
        job_id = fields.pop("job_id", None) or str(ObjectId())
        doc = {
            "job_id": job_id,
            "customer_id": CUSTOMER_ID,
            "user_id": USER.user_id,
            "provider_id": OPENAI.id,
            "provider_slug": OPENAI.slug.value,
            "model": "gpt-4o",
            "feature_slug": None,
            "prompt": "Say hello",
            "system_prompt": None,
            "input": {},
            "background": False,
            "idempotency_key": None,
            "status": JobStatus.QUEUED.value,
            "retry_count": 0,
            "next_attempt_at": now,
            "llm_response_id": None,
            "result": None,
            "error_message": None,
            "last_error": None,
            "created_at": now,
            "updated_at": now,
            "started_at": None,
            "completed_at": None,
            "cancelled_at": None,
        }
        doc.update(fields)
        self.jobs[job_id] = doc
        return dict(doc)

    async def get(self, job_id: str) -> Optional[dict]:
        doc = self.jobs.get(job_id)
        return dict(doc) if doc else None

    async def list_for_customer(self, customer_id, status=None, limit=50) -> List[dict]:
        docs = [
            dict(j)
            for j in self.jobs.values()
            if j["customer_id"] == customer_id and (not status or j["status"] == status)
        ]
        docs.sort(key=lambda j: j["created_at"], reverse=True)
        return docs[:limit]

    async def find_idempotent(self, customer_id, idempotency_key, within_window=True) -> Optional[dict]:
        for job in self.jobs.values():
            if job["customer_id"] == customer_id and job.get("idempotency_key") == idempotency_key:
                return dict(job)
        return None

    async def create(self, *, status=JobStatus.QUEUED, job_input=None, idempotency_key=None, **fields):
        if idempotency_key:
            existing = await self.find_idempotent(fields["customer_id"], idempotency_key)
            if existing:
                return existing, False
        doc = self.add(
            status=status.value,
            input=job_input or {},
            idempotency_key=idempotency_key,
            started_at=_now() if status == JobStatus.RUNNING else None,
            **fields,
        )
        return doc, True

    async def transition(self, job_id, expected, fields, inc=None) -> Optional[dict]:
        job = self.jobs.get(job_id)
        if job is None or job["status"] not in {s.value for s in expected}:
            return None
        job.update(fields)
        job["updated_at"] = _now()
        for key, amount in (inc or {}).items():
            job[key] = job.get(key, 0) + amount
        return dict(job)

    async def claim_next(self) -> Optional[dict]:
        now = _now()
        runnable = [
            j
            for j in self.jobs.values()
            if j["status"] in (JobStatus.QUEUED.value, JobStatus.RETRYING.value) and j["next_attempt_at"] <= now
        ]
        if not runnable:
            return None
        job = min(runnable, key=lambda j: j["created_at"])
        job.update({"status": JobStatus.RUNNING.value, "started_at": now, "updated_at": now})
        return dict(job)

    def _stuck(self, provider_id, cutoff, max_retries, ceiling_reached):
        in_flight = (JobStatus.RUNNING.value, JobStatus.WAITING_LLM.value)
        matches = [
            j
            for j in self.jobs.values()
            if j["provider_id"] == provider_id
            and j["status"] in in_flight
            and j["updated_at"] < cutoff
            and (j["retry_count"] >= max_retries) == ceiling_reached
        ]
        return min(matches, key=lambda j: j["updated_at"]) if matches else None

    async def retry_stuck(self, provider_id, cutoff, max_retries, timeout_seconds) -> Optional[dict]:
        job = self._stuck(provider_id, cutoff, max_retries, ceiling_reached=False)
        if job is None:
            return None
        now = _now()
        job.update(
            {
                "status": JobStatus.RETRYING.value,
                "retry_count": job["retry_count"] + 1,
                "last_error": f"Timeout: Scheduled for retry after {timeout_seconds:g}s with no response",
                "next_attempt_at": now,
                "llm_response_id": None,
                "updated_at": now,
            }
        )
        return dict(job)

    async def exhaust_stuck(self, provider_id, cutoff, max_retries) -> Optional[dict]:
        job = self._stuck(provider_id, cutoff, max_retries, ceiling_reached=True)
        if job is None:
            return None
        now = _now()
        job.update(
            {
                "status": JobStatus.EXHAUSTED.value,
                "result": None,
                "error_message": f"Timeout: No response from LLM provider after {max_retries} retry attempts",
                "completed_at": now,
                "updated_at": now,
            }
        )
        return dict(job)

    async def cancel(self, job_id, customer_id) -> Optional[dict]:
        job = self.jobs.get(job_id)
        cancellable = {s.value for s in CANCELLABLE_STATUSES}
        if job is None or job["customer_id"] != customer_id or job["status"] not in cancellable:
            return None
        now = _now()
        job.update(
            {
                "status": JobStatus.CANCELLED.value,
                "result": None,
                "error_message": CANCELLED_MESSAGE,
                "cancelled_at": now,
                "completed_at": now,
                "updated_at": now,
            }
        )
        return dict(job)


class FakeRateLimiter(RateLimiter):
    def __init__(self, quota: int = 1000):
        super().__init__(default_quota=quota)
        self.used: Dict[str, int] = {}

    def seed(self, customer_id: str, used: int) -> None:
        self.used[customer_id] = used

    def _result(self, customer_id: str, allowed: bool) -> RateLimitResult:
        _, reset_at = window_bounds(_now(), self.period)
        return RateLimitResult(
            allowed=allowed, used=self.used.get(customer_id, 0), quota=self.default_quota, reset_at=reset_at
        )

    async def increment(self, customer_id: str) -> RateLimitResult:
        used = self.used.get(customer_id, 0)
        allowed = used < self.default_quota
        if allowed:
            self.used[customer_id] = used + 1
        return self._result(customer_id, allowed)

    async def check(self, customer_id: str) -> RateLimitResult:
        return self._result(customer_id, self.used.get(customer_id, 0) < self.default_quota)


class FakeRegistry(ProviderRegistry):
    def __init__(self, *providers: ProviderConfig):
        self.providers = {p.slug: p for p in providers}

    async def get_by_slug(self, slug):
        return self.providers.get(slug)

    async def list_all(self):
        return list(self.providers.values())

    async def get_by_id(self, provider_id):
        return next((p for p in self.providers.values() if p.id == provider_id), None)


class FakeNotifier(NotificationService):
    def __init__(self):
        self.sent: List[NotificationCreate] = []

    @property
    def types(self) -> List[str]:
        return [n.notification_type.value for n in self.sent]

    async def create_notification(self, data: NotificationCreate) -> NotificationResponse:
        self.sent.append(data)
        return NotificationResponse(
            id=str(len(self.sent)),
            user_id=data.user_id,
            notification_type=data.notification_type.value,
            priority=data.priority.value,
            title=data.title,
            message=data.message,
            job_id=data.job_id,
            feature_slug=data.feature_slug,
            created_at=_now(),
        )


class FakeWebhookLog(WebhookLog):
    def __init__(self):
        self.seen = set()
        self.diagnostics: List[dict] = []
        self.dead_letters: List[dict] = []

    @property
    def events(self) -> List[str]:
        return [d["event_type"] for d in self.diagnostics]

    async def record_delivery(self, webhook_id, job_id, provider, event_type) -> bool:
        if webhook_id in self.seen:
            return False
        self.seen.add(webhook_id)
        return True

    async def release_delivery(self, webhook_id) -> None:
        self.seen.discard(webhook_id)

    async def diagnostic(self, event_type, **fields) -> None:
        self.diagnostics.append({"event_type": event_type, **fields})

    async def dead_letter(self, job_id, provider, payload, message) -> None:
        self.dead_letters.append({"job_id": job_id, "payload": payload, "error_message": message})


class FakeOpenAIResponses:
    def __init__(self):
        self.cancelled: List[str] = []

    async def cancel(self, response_id: str):
        self.cancelled.append(response_id)


class FakeClients:
    def __init__(self):
        self.responses = FakeOpenAIResponses()

    def openai(self):
        return SimpleNamespace(responses=self.responses)


class FakeProviderCall:
    """Replaces `call_provider`: returns `result` or raises `error`, recording each call."""

    def __init__(self):
        self.calls: List[dict] = []
        self.result = LLMResult(
            output="Hello there",
            usage=LLMUsage(prompt_tokens=3, completion_tokens=2, total_tokens=5),
            model="gpt-4o-2024-08-06",
            response_id="chatcmpl-1",
        )
        self.error: Optional[Exception] = None
        self.side_effect = None

    async def __call__(self, params, provider, clients, model):
        self.calls.append({"params": params, "provider": provider, "model": model})
        if self.side_effect:
            await self.side_effect()
        if self.error:
            raise self.error
        return self.result


class RecordingCollection:
    """
    Stands in for a Motor collection: records every call and replays queued
    results (or raises queued errors) per method, in order.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self._results: Dict[str, list] = {}
        self._errors: Dict[str, Exception] = {}

    def returns(self, method: str, *values) -> None:
        self._results.setdefault(method, []).extend(values)

    def raises(self, method: str, error: Exception) -> None:
        self._errors[method] = error

    def called(self, method: str) -> List[tuple]:
        return [(args, kwargs) for name, args, kwargs in self.calls if name == method]

    def _record(self, method: str, args, kwargs):
        self.calls.append((method, args, kwargs))
        if method in self._errors:
            raise self._errors.pop(method)
        queued = self._results.get(method)
        return queued.pop(0) if queued else None

    async def find_one(self, *args, **kwargs):
        return self._record("find_one", args, kwargs)

    async def find_one_and_update(self, *args, **kwargs):
        return self._record("find_one_and_update", args, kwargs)

    async def insert_one(self, *args, **kwargs):
        return self._record("insert_one", args, kwargs)

    async def update_one(self, *args, **kwargs):
        return self._record("update_one", args, kwargs)

    async def update_many(self, *args, **kwargs):
        return self._record("update_many", args, kwargs)

    async def delete_one(self, *args, **kwargs):
        return self._record("delete_one", args, kwargs)
