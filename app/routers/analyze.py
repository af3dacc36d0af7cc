"""
AI extraction endpoint.

POST /api/analyze-receipt — base64 image → ExtractionResult

Extraction failures are returned as ``succeeded=false`` with status 200 so
the client can drop into manual entry; only a missing or undecodable image
is a 400.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from app.dependencies import get_extractor
from app.pipeline import capture
from app.pipeline.extractor import ReceiptExtractor
from app.schemas import AnalyzeRequest, ExtractionResult

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/analyze-receipt", response_model=ExtractionResult)
def analyze_receipt(req: AnalyzeRequest, extractor: ReceiptExtractor = Depends(get_extractor)):
    image = capture.from_base64(req.image_base64, req.media_type)
    logger.info("Analyze: media_type=%s  bytes=%d", image.media_type, image.size)
    return extractor.extract(image)
