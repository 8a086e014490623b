import os
import yaml
import logging
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ValidationError, field_validator


SUPPORTED_PROVIDERS = ("aws", "google")


class OutputSettings(BaseModel):
    json_output_file: str = "scan_results.json"
    show_passing: bool = True


class ScanConfig(BaseModel):
    cache_file: Optional[str] = None
    providers: List[str] = list(SUPPORTED_PROVIDERS)
    plugins: List[str] = [] # Empty means every registered plugin for the providers
    regions: Optional[List[str]] = None # Region allow-list
    govcloud: bool = False
    china: bool = False
    default_region: Optional[str] = None
    max_region_workers: int = Field(default=8, ge=1)
    max_concurrent_plugins: int = Field(default=4, ge=1)
    plugin_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    plugin_settings: Dict[str, Any] = {}
    asl_rules_file: Optional[str] = None
    compliance_framework: Optional[str] = None
    outputs: List[str] = []
    output_settings: OutputSettings = OutputSettings()

    @field_validator('cache_file', 'asl_rules_file')
    def validate_file_exists(cls, v):
        if v is not None and not os.path.isfile(v):
            raise ValueError(f"File '{v}' does not exist.")
        return v

    @field_validator('providers')
    def validate_providers(cls, v):
        unknown = [p for p in v if p not in SUPPORTED_PROVIDERS]
        if unknown:
            raise ValueError(f"Unsupported providers: {unknown}")
        return v


class ConfigManager:
    def __init__(self, config_file_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config_file_path = config_file_path
        self.overrides = overrides or {}
        self.config_data = self._load_and_validate_config()


    def _load_and_validate_config(self) -> ScanConfig:
        """Loads and validates the main configuration file using Pydantic."""
        raw_config: Dict[str, Any] = {}
        try:
            if self.config_file_path:
                self.logger.info(f"Loading and validating config from: {self.config_file_path}")
                with open(self.config_file_path, 'r') as f:
                    raw_config = yaml.safe_load(f) or {}
            raw_config.update(self.overrides)
            # Pydantic validation happens here
            return ScanConfig(**raw_config)
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file '{self.config_file_path}' not found.")
        except ValidationError as e:
            raise ValueError(f"Configuration validation error: {e}")


    def get(self, key: str, default=None):
        """Get a configuration value by key."""
        return getattr(self.config_data, key, default)

    def get_cache_file(self):
        return self.config_data.cache_file

    def get_providers(self):
        return self.config_data.providers

    def get_plugin_ids(self):
        return self.config_data.plugins

    def get_region_allow_list(self):
        return self.config_data.regions

    def get_plugin_settings(self):
        return self.config_data.plugin_settings

    def get_asl_rules_file(self):
        return self.config_data.asl_rules_file

    def get_output_modules(self):
        return self.config_data.outputs

    def get_output_settings(self):
        return self.config_data.output_settings
