from scopesync.logging._scopesync_logger import SCOPESYNC_LOGGER, ColoredFormatter, set_log_level

__all__ = ["SCOPESYNC_LOGGER", "ColoredFormatter", "set_log_level"]
