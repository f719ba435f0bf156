"""
Docker Remote

Remote docker control over SSH: execution channel, output decoders,
compose project discovery and deploys.
"""

__version__ = "0.1.0"
