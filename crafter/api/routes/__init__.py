from . import auth, internal, jobs, usage

__all__ = ["auth", "internal", "jobs", "usage"]
