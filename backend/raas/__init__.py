"""
Rollup-as-a-Service: lifecycle orchestration for rollup deployments.
"""
__version__ = "0.1.0"
