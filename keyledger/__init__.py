"""
Keyledger: service and API key authorization with daily usage metering.
"""

__version__ = "1.0.0"
