"""Adapters around the Discord REST and gateway collaborators."""
