"""
GreenHost storage provisioning client.

Talks to the SFTPGo provisioning backend through an encrypted tunnel relay.
"""

__version__ = "1.0.0"
