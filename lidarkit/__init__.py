"""Host-side lidar toolkit: configuration, packets, log directory upkeep and firmware upgrade."""

__version__ = "1.2.5"