"""
llamadeck — lifecycle and conversation state for a local inference service.
"""

__version__ = "0.1.0"
