from scopesync.settings._scopesync_settings import ScopeSyncSettings

__all__ = ["ScopeSyncSettings"]
