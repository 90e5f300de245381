"""
Command interfaces to the inference service.
"""
from llamadeck.backends.base import CommandInterface
from llamadeck.backends.http import HttpCommandInterface

__all__ = [
    "CommandInterface",
    "HttpCommandInterface",
]
