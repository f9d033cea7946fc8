from .jupiter_client import JupiterClient
from .solana_client import SolanaClient, TxFailureReason, classify_error
from .swap_pipeline import SwapPipeline, resolve_input_raw

__all__ = [
    "JupiterClient",
    "SolanaClient",
    "SwapPipeline",
    "TxFailureReason",
    "classify_error",
    "resolve_input_raw",
]
