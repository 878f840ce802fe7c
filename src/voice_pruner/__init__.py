"""
Voice Pruner - Discord voice channel permission enforcer

Voice Pruner watches guild channels, roles and members and disconnects anyone
connected to a monitored voice channel who no longer has permission to connect.

Core Components:

- **State Mirror**: Per-guild cache of channels, roles, overwrites and members,
  rebuilt from a snapshot and kept current from gateway events
- **Permission Calculator**: Layered resolution of a member's effective
  permissions in a channel
- **Monitoring Policy**: Which voice channels the bot manages, and whether the
  bot has been exempted from automatic action in a guild
- **Prune Engine**: Finds connected members lacking ``CONNECT`` and removes them
- **Reconciliation Dispatcher**: Single event loop reacting to permission changes
- **Request Facade**: Backing logic for the ``/is-monitored``, ``/list`` and
  ``/prune`` slash commands

Usage:
    from voice_pruner.main import main
    main()
"""
