"""
netspeed: per-interface network throughput sampler
"""

__version__ = '0.3.0'
