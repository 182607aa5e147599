"""
Driver-side GPS tracking client
Streams device locations to the fleet monitoring server over Socket.IO
"""

__version__ = "1.0.0"
