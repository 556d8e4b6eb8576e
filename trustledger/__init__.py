"""
Briq Trust Ledger — tenant and landlord trust scores for a rental marketplace.
"""
__version__ = "1.0.0"
