"""
Primary stores, the rich store facade and the relational table layout.
"""
