"""
Discord-facing layer of Voice Pruner: py-cord cogs that feed gateway events into
the dispatcher and expose the slash commands.
"""
