"""
Bourbon Buddy admin tool.

Command-line operations for configuring the server, reconciling video
state with Mux and inspecting security events.
"""

__version__ = "1.0.0"
