from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ExportStlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bounds: List[float] = Field(..., min_length=4, max_length=4,
                                description="[west, south, east, north]")
    resolution: Optional[int] = None
    min_height: Optional[float] = Field(None, alias="minHeight")
    exaggeration: Optional[float] = None


class ErrorResponse(BaseModel):
    detail: str
