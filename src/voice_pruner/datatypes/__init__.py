"""Domain datatypes shared by every Voice Pruner component."""
