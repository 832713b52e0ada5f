from typing import Dict, List, Literal, Optional

from pydantic import BaseModel


class ServiceStatus(BaseModel):
    status: Literal["up", "down", "unknown"]
    message: Optional[str] = None


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    timestamp: str
    services: Dict[str, ServiceStatus]


class ModelCard(BaseModel):
    id: str
    object: Literal["model"] = "model"
    created: int
    owned_by: str


class ModelsListResponse(BaseModel):
    object: Literal["list"] = "list"
    data: List[ModelCard]
