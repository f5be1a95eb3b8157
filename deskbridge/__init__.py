"""
DeskBridge - Jira, OpenAI Assistants and WhatsApp integration backend.
"""

__version__ = "0.1.0"
