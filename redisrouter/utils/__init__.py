from redisrouter.utils import config_normalization, logging

__all__ = ("config_normalization", "logging")
