# MedGate Session Security Module
"""
Session registry, request tokens, device fingerprints and anomaly detection
for the content-delivery path.
"""

from .anomaly import AnomalyDetector, AnomalyReport
from .sessions import SessionInfo, SessionManager
from .tokens import TokenIssuer, generate_device_fingerprint

__all__ = [
    "AnomalyDetector",
    "AnomalyReport",
    "SessionInfo",
    "SessionManager",
    "TokenIssuer",
    "generate_device_fingerprint",
]
