"""GoalOS configuration"""

from goalos.config.settings import StoreSettings, load_settings, save_settings

__all__ = ["StoreSettings", "load_settings", "save_settings"]
