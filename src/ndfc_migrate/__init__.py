"""
NDFC Migrate - move standalone NX-OS switches under Nexus Dashboard Fabric Controller.
"""

__version__ = "0.1.0"
