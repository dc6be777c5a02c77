"""Live-update propagation: notifier, watch loop and event bus."""
