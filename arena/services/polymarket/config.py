from pydantic import BaseModel


class PolymarketConfig(BaseModel):
    """Configuration for Polymarket Gamma API client."""

    base_url: str = "https://gamma-api.polymarket.com"
    timeout_seconds: float = 30.0
    max_connections: int = 20
    max_keepalive_connections: int = 10
    page_size: int = 100
    max_pages: int = 5
    max_retries: int = 3

    # A closed market with a YES price at or beyond these bounds resolved
    yes_resolution_price: float = 0.99
    no_resolution_price: float = 0.01
