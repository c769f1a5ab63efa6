"""
Adapters connecting the rich store to external database engines.
"""
