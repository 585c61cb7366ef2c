from .tracker import TTLStore, RequestTracker, sweep_periodically

__all__ = ["TTLStore", "RequestTracker", "sweep_periodically"]
