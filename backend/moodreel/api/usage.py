from fastapi import APIRouter, Depends

from moodreel.entities import QuotaSubject, UsageQuota
from moodreel.schemas import SubmitQueryResponse, UsageLimitsResponse
from moodreel.api.deps import get_engine, get_quota_subject
from moodreel.services.discovery_engine import DiscoveryEngine
from moodreel.services.usage_quota import format_reset_time

router = APIRouter()


def _limits_response(quota: UsageQuota) -> UsageLimitsResponse:
    data = quota.to_dict()
    return UsageLimitsResponse(resetIn=format_reset_time(quota.reset_at), **data)


@router.get("", response_model=UsageLimitsResponse)
async def get_usage(
    subject: QuotaSubject = Depends(get_quota_subject),
    engine: DiscoveryEngine = Depends(get_engine),
):
    """Current assistant quota for the caller."""
    quota = await engine.get_usage_limits(subject)
    return _limits_response(quota)


@router.post("/submit", response_model=SubmitQueryResponse)
async def submit_query(
    subject: QuotaSubject = Depends(get_quota_subject),
    engine: DiscoveryEngine = Depends(get_engine),
):
    """Spend one assistant query. allowed=False means the daily limit is reached."""
    allowed = await engine.submit_query(subject)
    quota = await engine.get_usage_limits(subject)
    return SubmitQueryResponse(allowed=allowed, usage=_limits_response(quota))
