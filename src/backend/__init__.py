"""
opencarve Backend Module

HTTP API server exposing CNC conversion and output downloads.
"""

from .server import run_server

__all__ = ['run_server']
