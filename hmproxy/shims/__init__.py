from .registry import ShimRegistry

__all__ = ["ShimRegistry"]
