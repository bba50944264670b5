"""Room-based real-time chat relay."""
