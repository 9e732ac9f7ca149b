"""
Utility helpers
"""
from .batch import BatchError, BatchResult, run_batch

__all__ = ['BatchError', 'BatchResult', 'run_batch']
