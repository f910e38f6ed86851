from .projector import CoarseSolution, WarmStart, project_warm_start

__all__ = ["CoarseSolution", "WarmStart", "project_warm_start"]
