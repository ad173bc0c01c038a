"""
Rate limit service for the GitHub Access Governor.
"""

from typing import Dict, Optional

from fastapi import Query
from pydantic import BaseModel, Field

from shared.base_service import BaseService, VERSION
from shared.config import ServiceConfig
from service_auth.app.issuer import TokenIssuer
from .ratelimit import AdmissionDecision, RateLimitGovernor, ResourceStatus

SERVICE_NAME = "ratelimit"
SERVICE_PORT = 8020


class RateLimitUpdateRequest(BaseModel):
    """Response headers reported by a caller after a GitHub API call."""
    headers: Dict[str, str] = Field(default_factory=dict, description="x-ratelimit-* response headers")


class RateLimitService(BaseService):
    """Rate limit service implementation."""

    def __init__(self, governor: Optional[RateLimitGovernor] = None, config: Optional[ServiceConfig] = None):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config=config)
        self.governor = governor or RateLimitGovernor.from_config(self.config)
        self._setup_ratelimit_routes()

    def _setup_ratelimit_routes(self):
        """Set up rate-limit routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "GitHub Access Governor - Rate Limit Service",
                "version": VERSION
            }

        @self.app.get("/rate-limits")
        async def rate_limits():
            """Summary counts plus the raw snapshot of every tracked resource."""
            return {
                "summary": self.governor.global_status().model_dump(),
                "details": [detail.model_dump(mode="json") for detail in self.governor.rate_limit_details()]
            }

        # Registered before the {resource} routes so the literal path wins
        @self.app.post("/rate-limits/clear-expired")
        async def clear_expired():
            """Drop snapshots whose reset time has passed."""
            cleared = self.governor.clear_expired()
            self.logger.info("Expired rate limits cleared", cleared=cleared)
            return {"cleared": cleared}

        @self.app.get("/rate-limits/{resource}", response_model=ResourceStatus)
        async def resource_status(resource: str):
            """Classified status of one resource."""
            return self.governor.resource_status(resource)

        @self.app.post("/rate-limits/{resource}", response_model=ResourceStatus)
        async def update_rate_limit(resource: str, request: RateLimitUpdateRequest):
            """Record the quota headers of a response made by another process."""
            self.governor.update_rate_limit(resource, request.headers)
            return self.governor.resource_status(resource)

        @self.app.get("/rate-limits/{resource}/admission", response_model=AdmissionDecision)
        async def admission(resource: str, batch_size: int = Query(1, ge=1, le=10000)):
            """Admission advice for a pending batch of calls."""
            return self.governor.admission(resource, batch_size)

    def _check_dependencies(self) -> Dict[str, str]:
        """Report whether a usable GitHub App credential is configured."""
        if self.config.app_id is None or not self.config.private_key:
            return {"github_app_credential": "not_configured"}
        if not TokenIssuer.validate_key(self.config.private_key):
            return {"github_app_credential": "invalid"}
        return {"github_app_credential": "ok"}


def create_app(governor: Optional[RateLimitGovernor] = None, config: Optional[ServiceConfig] = None):
    """Create rate limit service application."""
    service = RateLimitService(governor=governor, config=config)
    return service.app


if __name__ == "__main__":
    service = RateLimitService()
    service.run()
