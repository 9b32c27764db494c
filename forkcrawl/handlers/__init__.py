"""
Ready-made crawler handlers.
"""

from .links import LinkCollector
from .patterns import PatternHandler

__all__ = ['LinkCollector', 'PatternHandler']
