from .case_store import InMemoryCaseStore
from .config import RescueConfig, load_config

__all__ = ["RescueConfig", "load_config", "InMemoryCaseStore"]
