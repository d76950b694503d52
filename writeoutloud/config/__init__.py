from .config import load_config, validate_config, with_defaults
from .settings import ScoringConfig, SessionPolicy, TimingConfig

__all__ = ["load_config", "validate_config", "with_defaults", "ScoringConfig", "SessionPolicy", "TimingConfig"]
