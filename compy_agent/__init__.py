from .agent import CompyChatAgent
from .rate_limiter import RateLimiter, build_rate_limiter, client_identity

__all__ = ["CompyChatAgent", "RateLimiter", "build_rate_limiter", "client_identity"]
