from .table import SEGMENT_COLUMNS, CostTable

__all__ = ["CostTable", "SEGMENT_COLUMNS"]
