"""
Microgrid Trading Service

A FastAPI service for smart-home microgrid communities: peer-to-peer energy
trades, community membership and a simulated live telemetry snapshot.
"""

__version__ = "1.0.0"
__author__ = "Smart Home Energy Team"
__description__ = "Community energy trading and live microgrid telemetry simulation"
