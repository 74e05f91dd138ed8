"""
Handymate – offert- och fakturamotor för hantverksföretag.

Livscykel för offerter/fakturor, ROT/RUT-beräkning och digital signering.
"""

__version__ = "0.3.0"
