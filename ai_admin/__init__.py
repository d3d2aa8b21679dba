"""
AI Admin

Conversation context cache and booking command pipeline for a YClients-backed
WhatsApp salon assistant.
"""

__version__ = "0.1.0"
