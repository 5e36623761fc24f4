# phishing_detector/routes/check.py
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field
import logging
import time
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Union

from ..services.detector import UNABLE_TO_ANALYZE
from ..services.url_parser import ParseError, site_key

logger = logging.getLogger(__name__)

router = APIRouter()

TabId = Union[int, str]


# Request/Response models
class CheckRequest(BaseModel):
    url: str

class CheckResponse(BaseModel):
    url: str
    domain: str
    score: int
    action: str  # "allow" | "warn" | "block"
    risk_label: str
    reasons: List[str]
    details: Dict[str, Any]
    processing_time_ms: int

class NavigationRequest(BaseModel):
    tab_id: TabId
    url: str

class NavigationResponse(BaseModel):
    tab_id: TabId
    url: str
    status: str
    action: Optional[str] = None
    score: Optional[int] = None
    domain: Optional[str] = None
    reasons: List[str] = []
    record: Optional[Dict[str, Any]] = None
    presentation: Dict[str, Any] = {}
    error: Optional[str] = None

class ReportRequest(BaseModel):
    url: str

class TrustRequest(BaseModel):
    domain: str = Field(min_length=1)

class PageAnalysisRequest(BaseModel):
    url: str
    html: str

class PageAnalysisResponse(BaseModel):
    url: str
    flags: List[str]
    marked_elements: List[Dict[str, Any]]
    html: str


@router.post("/check", response_model=CheckResponse)
async def check_url(request: CheckRequest, req: Request):
    """
    Score a URL without recording anything: no reputation update,
    no statistics, no per-tab record.
    """
    start_time = time.time()
    detector = req.app.state.detector

    try:
        result, action = detector.preview(request.url)
    except ParseError as e:
        logger.warning(f"Rejected malformed URL for check: {e}")
        raise HTTPException(status_code=422, detail={"error": "invalid_url", "message": str(e)})

    processing_time = int((time.time() - start_time) * 1000)

    return CheckResponse(
        url=request.url,
        domain=result.details["domain"],
        score=result.score,
        action=action.value,
        risk_label=detector.renderer.risk_label(result.score),
        reasons=result.reasons,
        details=result.details,
        processing_time_ms=processing_time
    )


@router.post("/navigation", response_model=NavigationResponse)
async def navigate(request: NavigationRequest, req: Request):
    """Navigation event from the host: score, decide, apply side effects, record"""
    result = await req.app.state.navigation_queue.submit(request.tab_id, request.url)

    return NavigationResponse(
        tab_id=result.tab_id,
        url=result.url,
        status=result.status,
        action=result.action.value if result.action else None,
        score=result.score,
        domain=result.domain,
        reasons=result.reasons,
        record=asdict(result.record) if result.record else None,
        presentation=result.presentation,
        error=result.error
    )


@router.get("/analysis/{tab_id}")
async def get_analysis(tab_id: str, req: Request):
    """Latest analysis for a tab, or an explicit unable-to-analyze state"""
    record = await req.app.state.detector.get_analysis(tab_id)
    if record is None:
        return {
            "status": UNABLE_TO_ANALYZE,
            "message": "Unable to analyze",
            "tab_id": tab_id
        }

    return {
        "status": "analyzed",
        "tab_id": tab_id,
        "risk_label": req.app.state.detector.renderer.risk_label(record.risk_score),
        **asdict(record)
    }


@router.delete("/analysis/{tab_id}")
async def forget_analysis(tab_id: str, req: Request):
    await req.app.state.detector.forget_tab(tab_id)
    return {"success": True, "tab_id": tab_id}


@router.post("/report")
async def report_phishing(request: ReportRequest, req: Request):
    try:
        domain = await req.app.state.detector.report_phishing(request.url)
    except ParseError as e:
        raise HTTPException(status_code=422, detail={"error": "invalid_url", "message": str(e)})

    return {"success": True, "domain": domain}


@router.post("/trust")
async def trust_site(request: TrustRequest, req: Request):
    try:
        added = await req.app.state.detector.trust_site(request.domain)
    except ValueError as e:
        raise HTTPException(status_code=422, detail={"error": "invalid_domain", "message": str(e)})

    return {
        "success": True,
        "domain": site_key(request.domain),
        "already_trusted": not added
    }


@router.post("/page/analyze", response_model=PageAnalysisResponse)
async def analyze_page(request: PageAnalysisRequest, req: Request):
    """Scan page HTML for suspicious links, forms, images and text"""
    analysis = req.app.state.detector.analyze_page(request.url, request.html)

    return PageAnalysisResponse(
        url=analysis.url,
        flags=analysis.flags,
        marked_elements=analysis.marked_elements,
        html=analysis.html
    )
