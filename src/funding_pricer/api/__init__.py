"""
HTTP surface of Funding Pricer (FastAPI).
"""
