"""Alpaca Gateway test suite."""
