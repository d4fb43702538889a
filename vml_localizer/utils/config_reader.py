# vml_localizer/utils/config_reader.py

import yaml
import logging

logger = logging.getLogger(__name__)

class ConfigReader:
    """
    Helper class to read the localizer configuration from a YAML file.
    """
    def __init__(self, config_path):
        """
        Initializes the ConfigReader with the path to the configuration file.

        Args:
            config_path (str): The path to the YAML configuration file.
        """
        self.config_path = config_path
        logger.info(f"ConfigReader initialized with path: {self.config_path}")

    def load_config(self):
        """
        Loads and parses the YAML configuration file.

        Returns:
            dict or None: A dictionary containing the configuration, or None if loading fails.
        """
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except FileNotFoundError:
            logger.error(f"Configuration file not found: {self.config_path}")
            return None
        except yaml.YAMLError as e:
            logger.error(f"Error parsing configuration file {self.config_path}: {e}")
            return None

        if config is None:
            config = {}
        if not isinstance(config, dict):
            logger.error(f"Configuration root in {self.config_path} must be a mapping, got {type(config).__name__}")
            return None
        logger.info("Configuration loaded successfully.")
        return config

    @staticmethod
    def section(config, name):
        """
        Returns a named sub-section of a loaded configuration.

        Args:
            config (dict or None): The loaded configuration.
            name (str): Section name, e.g. 'cost_map'.

        Returns:
            dict: The section, or an empty dict if the configuration or section is missing.
        """
        if not config:
            return {}
        section = config.get(name)
        if section is None:
            logger.debug(f"Configuration section '{name}' not present, using defaults.")
            return {}
        if not isinstance(section, dict):
            logger.warning(f"Configuration section '{name}' is not a mapping, ignoring it.")
            return {}
        return section
