from .precompute import PrecomputedInputs, run_precomputation

__all__ = ["PrecomputedInputs", "run_precomputation"]
