"""Infrastructure Layer - database, encryption, audit persistence, logging.

Invariants:
    - Infrastructure never decides inventory rules; it only moves bytes and rows
    - Every external failure mapped onto the StockroomError hierarchy
"""
