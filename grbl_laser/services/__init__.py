"""Service layer for laser operations"""

from .laser_service import LaserDeviceManager, LaserService, describe_failure

__all__ = ['LaserDeviceManager', 'LaserService', 'describe_failure']
