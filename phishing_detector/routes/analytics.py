# phishing_detector/routes/analytics.py

from fastapi import APIRouter, Request
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["analytics"])


@router.get("/stats")
async def get_stats(req: Request):
    """
    Detection counters: sites blocked, threats detected, alerts shown.
    Counters only increase; they are persisted across restarts.
    """
    detector = req.app.state.detector
    return {
        "status": "success",
        "stats": detector.statistics.snapshot()
    }


@router.get("/reputation/stats")
async def get_reputation_stats(req: Request):
    """Sizes of the whitelist, trusted and suspicious domain sets"""
    detector = req.app.state.detector
    return {
        "status": "success",
        "reputation": detector.reputation.get_stats(),
        "thresholds": {
            "warn": detector.policy.warn_threshold,
            "block": detector.policy.block_threshold
        }
    }
