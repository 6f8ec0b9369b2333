"""Company readiness endpoints.

  POST /api/readiness/score                  → score a snapshot supplied by the caller
  GET  /api/readiness/companies/{company_id} → fetch the company's records, then score
"""

import logging

from fastapi import APIRouter, Depends, Query

from govready.auth.deps import RequestSession, require_organization
from govready.dependencies import get_backend_client
from govready.schemas.readiness import ReadinessInputs, ReadinessReport
from govready.services.backend_client import OnboardingBackendClient
from govready.services.readiness import build_readiness_report

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/score", response_model=ReadinessReport)
async def score_snapshot(
    body: ReadinessInputs,
    limit: int = Query(5, ge=0, le=50),
    _session: RequestSession = Depends(require_organization),
):
    return build_readiness_report(body, limit)


@router.get("/companies/{company_id}", response_model=ReadinessReport)
async def company_readiness(
    company_id: str,
    limit: int = Query(5, ge=0, le=50),
    _session: RequestSession = Depends(require_organization),
    client: OnboardingBackendClient = Depends(get_backend_client),
):
    snapshot = await client.fetch_company_snapshot(company_id)
    report = build_readiness_report(snapshot, limit)
    logger.info(f"Company {company_id} readiness {report.score}% ({len(report.missing_keys)} missing)")
    return report
