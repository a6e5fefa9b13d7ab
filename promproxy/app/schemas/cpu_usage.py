from pydantic import BaseModel, Field, ConfigDict


class CpuUsageResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    average_cpu_usage: float = Field(..., description="Average CPU usage in percent")


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: str = Field(..., description="Error description")
