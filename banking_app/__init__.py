"""
Banking App

Account management and money movement (withdraw, deposit, peer transfer)
over a two-pocket account model, with store-enforced identifier uniqueness
and serialized, transactional balance updates.
"""

__version__ = "1.0.0"
