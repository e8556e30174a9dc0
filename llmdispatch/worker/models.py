"""Worker run models."""

from typing import List, Optional

from pydantic import BaseModel


class WorkerJobResult(BaseModel):
    job_id: str
    status: str
    message: Optional[str] = None


class WorkerRunResponse(BaseModel):
    processed: bool
    count: Optional[int] = None
    results: Optional[List[WorkerJobResult]] = None
    recovered: Optional[List[WorkerJobResult]] = None
    message: Optional[str] = None
