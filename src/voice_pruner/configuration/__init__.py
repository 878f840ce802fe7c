"""
Configuration management for Voice Pruner.

- **app_configuration.py**: YAML configuration loader for global settings such
  as the exemption role name, removal concurrency and the event queue size.
  Falls back to defaults on missing or malformed config files.
"""
