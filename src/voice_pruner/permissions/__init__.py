"""Permission resolution and monitoring policy."""
