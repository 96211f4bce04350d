"""
Payflow workflow engine.

Executes node/edge workflow graphs triggered by crypto-payment events.
"""

__version__ = "0.1.0"
