from voucherdraw.draw.service import DrawService
from voucherdraw.draw.types import AllocationResult, EligibilityResult, RequestMeta

__all__ = ["AllocationResult", "DrawService", "EligibilityResult", "RequestMeta"]
