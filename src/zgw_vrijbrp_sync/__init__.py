"""Schema-driven synchronization between a ZGW case store and VrijBRP."""

__version__ = "0.1.0"
