"""Fault-injection driven recovery and SLA-reactive control for simpy cloud simulations."""

__version__ = "0.1.0"
