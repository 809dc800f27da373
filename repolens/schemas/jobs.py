from pydantic import BaseModel, ConfigDict, Field

from repolens.models.job import JobStatus


class SubmitRequest(BaseModel):
    url: str = Field(default="", description="GitHub repository URL, e.g. https://github.com/owner/repo")


class SubmitResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    status: JobStatus = "pending"


class ConnectionStatus(BaseModel):
    connected: bool
    error: str | None = None
