from typing import List, Literal, Optional
from pydantic import BaseModel, Field
from review_gateway.models.enums import ReviewStatus


class CodeSuggestion(BaseModel):
    file: Optional[str] = None
    line_number: Optional[int] = None
    type: Literal["improvement", "fix", "optimization", "style"] = "improvement"
    severity: Literal["low", "medium", "high"] = "medium"
    description: str
    suggested_code: Optional[str] = None
    reasoning: str = ""


class ReviewResult(BaseModel):
    installation_id: str
    repository_name: str
    pr_number: int
    merge_score: float = Field(ge=0, le=100)
    review_status: ReviewStatus = ReviewStatus.COMPLETED
    suggestions: List[CodeSuggestion] = Field(default_factory=list)
    violated_rules: List[str] = Field(default_factory=list)
    summary: str = ""
    confidence: float = 0.0
    processing_time_ms: int = 0
