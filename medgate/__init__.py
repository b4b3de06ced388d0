"""
MedGate Package
Learning-progression gating and session security for the content-delivery path
"""

__version__ = "1.0.0"
__author__ = "MedGate Team"

from .gateway import LearningGateway

__all__ = ["LearningGateway"]
