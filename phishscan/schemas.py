from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any

# ==========================================
# 📥 INPUT MODELS
# ==========================================
# Required fields are declared Optional so the routes can answer a missing
# value with a 400 instead of FastAPI's default 422.

class ScanRequest(BaseModel):
    url: Optional[str] = None
    anchorText: Optional[str] = None
    senderDomain: Optional[str] = None

class LinkIn(BaseModel):
    href: Optional[str] = None
    anchorText: Optional[str] = None

class EmailScanRequest(BaseModel):
    headers: Optional[str] = None
    body: Optional[str] = None
    links: Optional[List[LinkIn]] = None

class FeedbackRequest(BaseModel):
    url: Optional[str] = None
    verdict: Optional[str] = None
    comment: Optional[str] = None

# ==========================================
# 📤 RESPONSE MODELS
# ==========================================

class ScanResponse(BaseModel):
    ok: bool = True
    url: str
    verdict: str
    score: int = Field(ge=0, le=100)
    breakdown: Dict[str, Any] = {}
    cached: bool = False

class EmailScanResponse(BaseModel):
    ok: bool = True
    verdict: str
    score: int = Field(ge=0, le=100)
    breakdown: Dict[str, Any] = {}

class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
