"""
Alert rule evaluation
"""
from .engine import AlertRuleEngine

__all__ = ["AlertRuleEngine"]
