"""
Feedback endpoint.

POST /feedback - Attach a user rating to a previously returned trace.
"""
import logging
import time

from fastapi import APIRouter, Depends, Request

from pmcopilot.observability import ObservabilityClient
from pmcopilot.server.deps import get_observability
from pmcopilot.server.schemas import FeedbackRequest, FeedbackResponse


logger = logging.getLogger(__name__)

router = APIRouter(tags=["feedback"])


@router.post("/feedback", response_model=FeedbackResponse)
async def submit_feedback(
    body: FeedbackRequest,
    request: Request,
    observability: ObservabilityClient = Depends(get_observability),
) -> FeedbackResponse:
    """
    Record a 1-5 rating for a trace.

    Headers:
    - X-User-ID: Optional user identifier (default "anonymous")
    - X-Session-ID: Optional session identifier

    Tracing failures are not reported to the caller.
    """
    user_id = getattr(request.state, "user_id", None) or "anonymous"
    session_id = getattr(request.state, "session_id", None) or "unknown"

    await observability.track_event(
        "feedback_submitted",
        {
            "trace_id": body.trace_id,
            "generation_id": body.generation_id,
            "rating": body.rating,
            "has_comment": bool(body.comment),
        },
        user_id,
        session_id,
    )

    start = time.perf_counter()
    score_id = await observability.submit_score(
        body.trace_id, body.rating, comment=body.comment, user_id=user_id
    )
    elapsed_ms = (time.perf_counter() - start) * 1000

    await observability.track_performance_metric(
        "feedback_submission_time",
        elapsed_ms,
        "ms",
        {"trace_id": body.trace_id, "user_id": user_id},
    )

    if score_id is None:
        logger.info("Feedback for trace %s not recorded: observability unavailable", body.trace_id)
    return FeedbackResponse(success=True, message="Feedback submitted successfully")
