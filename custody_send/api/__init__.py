"""
HTTP surface: the FastAPI app serving transfer construction and balances,
and the client the send flow uses to reach it.
"""

from custody_send.api.client import TransferApiClient

__all__ = ["TransferApiClient"]
