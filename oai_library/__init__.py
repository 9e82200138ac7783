"""OAI-PMH library: cache store, synchronization pipeline and protocol engine.

Contains all business logic for the harvesting endpoint. The oaid daemon
provides thin HTTP wrappers around these services.
"""

__version__ = "0.1.0"
