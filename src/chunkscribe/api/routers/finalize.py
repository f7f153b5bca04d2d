"""
Session finalize endpoint.
"""

from fastapi import APIRouter, Depends, Request

from ...application.use_cases.finalize_session import FinalizeSession
from ..deps import get_finalize_session
from ..schemas.common import ApiResponse
from ..schemas.pipeline import FinalizeIn, FinalizeOut
from ..utils.responses import ok

router = APIRouter(tags=["finalize"])


@router.post("/finalize", response_model=ApiResponse[FinalizeOut])
async def finalize_session(
    request: Request,
    body: FinalizeIn,
    finalizer: FinalizeSession = Depends(get_finalize_session),
):
    """Flush the rolling transcript, consolidate summaries and call the finalizer."""
    result = await finalizer.execute(body.to_request())
    return ok(request, data=FinalizeOut.from_result(result), message="finalized")
