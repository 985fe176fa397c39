"""
Business logic for Funding Pricer.
"""
