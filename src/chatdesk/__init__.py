"""
chatdesk: multi-session chat orchestration over streaming model providers.
"""

__version__ = "0.1.0"
