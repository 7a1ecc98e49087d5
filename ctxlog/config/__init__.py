from .loader import Settings, load_settings, VERSION
