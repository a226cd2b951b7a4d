"""Order pricing and fulfillment pipeline for the fabrication storefront."""

__version__ = "1.0.0"
