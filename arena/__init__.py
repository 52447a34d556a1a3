"""Arena: LLM forecasting tournament on Polymarket binary markets."""

__version__ = "0.1.0"

__all__ = ["__version__"]
