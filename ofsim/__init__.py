"""OpenFlow controller apps, LLDP topology routing, HyperFlow synchronisation and host traffic models for simulation."""

__version__ = "0.1.0"