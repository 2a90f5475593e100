"""
camilla-eq: control client for a CamillaDSP engine.

Two duplex websocket endpoints (control and spectrum) carry serialized
request/response commands; the pipeline package edits the configuration
document pushed through them.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
