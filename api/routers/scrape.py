"""광고 수집 API.

POST /api/scrape-ads
  - 성공: 200 + AcquisitionResult (success=true, facets 포함)
  - 실패: AcquisitionFailure (success=false), kind별 상태코드
      invalid_input 400 / upstream 502 / timeout 504 / acquisition 500
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from api.deps import get_controller
from api.schemas import ScrapeRequest
from crawler.acquisition import AcquisitionController
from processor.models import AcquisitionFailure

logger = logging.getLogger("adreach.api.scrape")

router = APIRouter(prefix="/api", tags=["scrape"])

FAILURE_STATUS = {
    "invalid_input": 400,
    "upstream": 502,
    "timeout": 504,
    "acquisition": 500,
}


@router.post("/scrape-ads")
async def scrape_ads(
    body: ScrapeRequest,
    controller: AcquisitionController = Depends(get_controller),
):
    """페이지 단위 소재 수집 + 집계 리포트."""
    outcome = await controller.run(body.page_reference, body.to_options())

    if isinstance(outcome, AcquisitionFailure):
        status_code = FAILURE_STATUS.get(outcome.kind, 500)
        logger.warning(
            "scrape-ads failed: kind=%s code=%s error=%s",
            outcome.kind, outcome.code, outcome.error,
        )
        return JSONResponse(status_code=status_code, content=jsonable_encoder(outcome))

    logger.info(
        "scrape-ads ok: page=%s strategy=%s creatives=%d partial=%s",
        outcome.page_id, outcome.strategy, outcome.total_found, outcome.partial,
    )
    return JSONResponse(status_code=200, content=jsonable_encoder(outcome))
