from pydantic import BaseModel
from typing import List

class InsightsResponse(BaseModel):
    month: str
    insights: List[str]
