"""
AZE Price Service
Polls the BTC quote, derives the AZE price and serves its history over REST.
"""

__version__ = "1.0.0"
__author__ = "AZE Price Team"
__description__ = "BTC quote ingestion and AZE price history service"
