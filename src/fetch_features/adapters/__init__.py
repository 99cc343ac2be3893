"""
Transport adapters implementing the Requestor protocol.
"""
from .httpx_requestor import HttpxRequestor

__all__ = ["HttpxRequestor"]
