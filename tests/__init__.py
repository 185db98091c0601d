"""
Tests for AZE Price Service.
"""
