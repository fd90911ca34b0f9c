"""
Risk-Control Configuration
"""
from .settings import RiskSettings, settings

__all__ = ["RiskSettings", "settings"]
