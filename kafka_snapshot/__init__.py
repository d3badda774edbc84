"""
Point-in-time diagnostic snapshots of a Kafka cluster.
"""

__version__ = "0.3.0"
