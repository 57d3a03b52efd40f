from .config import BaseConfig, StewardConfig
