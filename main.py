"""
ClinicAI - AI visibility scan service
FastAPI application exposing the multi-provider visibility pipeline.
"""

import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException

from clinicai.config import LOG_LEVEL, get_scan_providers
from clinicai.errors import ScanRequestError, VisibilityScanError
from clinicai.pipeline import run_visibility_analysis
from clinicai.visibility_models import AuditSignals, ScanRequest, ServiceAnalysisResult

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="ClinicAI Visibility Scan")


class VisibilityScanPayload(ScanRequest):
    audit_signals: Optional[AuditSignals] = None


@app.on_event("startup")
async def startup():
    logger.info("[STARTUP] Scan providers: %s", get_scan_providers())


@app.get("/health")
async def health():
    return {"status": "ok", "providers": get_scan_providers()}


@app.post("/api/visibility-scan", response_model=ServiceAnalysisResult)
async def visibility_scan(payload: VisibilityScanPayload):
    request = ScanRequest(
        domain=payload.domain,
        query=payload.query,
        city=payload.city,
        api_key_provider_a=payload.api_key_provider_a,
        api_key_provider_b=payload.api_key_provider_b,
    )
    try:
        return await run_visibility_analysis(request, audit_signals=payload.audit_signals)
    except ScanRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except VisibilityScanError as e:
        logger.error("Visibility scan failed for %s: %s", payload.domain, e)
        raise HTTPException(status_code=502, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
