"""
Top-level package for the campaign store.

This package exposes the data-management core (store, indexes, filters, event bus)
and the service layer that wires it to render targets.
Most code should import from submodules such as:
    campaign_store.core
    campaign_store.services
    campaign_store.analysis
"""

__all__: list[str] = []
