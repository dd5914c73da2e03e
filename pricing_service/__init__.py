"""Pricing Service: service catalog, priced items and their hierarchy."""
