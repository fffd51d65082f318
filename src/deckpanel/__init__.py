"""
Simulated audience panel review for presentation decks.
"""
__version__ = "0.1.0"
