"""Job store package."""
