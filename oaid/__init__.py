"""oaid - OAI-PMH repository daemon.

FastAPI service exposing oai_library over HTTP.
"""

__version__ = "0.1.0"
