"""VRChat API client and the services built on it."""
